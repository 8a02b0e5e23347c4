"""Backend base class and the gate table.

Concrete backends subclass `Backend` and implement the underscored engine
methods (`_allocate`, `_apply_gate`, `_measure`, `_reset`). The public methods
wrap them so that any exception from the engine surfaces as a
`BackendFailure`, which the session layer answers without touching its own
bookkeeping.

Gate table
----------
`GATE_ARITY` maps each gate name the interpreter understands to
(number of qubits, number of float parameters). A backend only accepts the
subset it lists in `supported_gates`.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
from loguru import logger

from qosc.types import BackendFailure, BackendProtocol

GATE_ARITY: dict[str, tuple[int, int]] = {
    "I": (1, 0),
    "X": (1, 0),
    "Y": (1, 0),
    "Z": (1, 0),
    "H": (1, 0),
    "S": (1, 0),
    "SDG": (1, 0),
    # T and TDG are non-Clifford: reserved for a state-vector backend, and
    # answered "not supported" by the stabilizer backends
    "T": (1, 0),
    "TDG": (1, 0),
    "RX": (1, 1),
    "RY": (1, 1),
    "RZ": (1, 1),
    "CX": (2, 0),
    "CZ": (2, 0),
    "SWAP": (2, 0),
}

GATE_ALIASES = {"CNOT": "CX", "SDAG": "SDG", "TDAG": "TDG", "ID": "I"}


def canonical_gate(gate: str) -> str:
    """Upper-case gate name with aliases resolved, e.g. 'cnot' -> 'CX'."""
    gate = gate.strip().upper()
    return GATE_ALIASES.get(gate, gate)


_handle_ids = itertools.count(1)


@dataclass(eq=False)
class RegisterHandle:
    """Backend-owned register. `state` is opaque outside the backend."""

    backend: str
    qubit_count: int
    state: Any = field(repr=False)
    handle_id: int = field(default_factory=lambda: next(_handle_ids))


class Backend:
    """Base class for simulator backends.

    Attributes
    ----------
    name : str
        Namespace the backend is served under, e.g. "gk" -> "/gk/init".
    supported_gates : frozenset[str]
        Canonical gate names (keys of GATE_ARITY) this backend applies.
    """

    name: str = ""
    supported_gates: frozenset[str] = frozenset()

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r}, seed={self.seed})"

    # ------------------------------------------------------------------------
    # public operations, safe to call from a worker thread

    def allocate(self, qubit_count: int) -> RegisterHandle:
        return self._guarded("allocate", self._allocate, qubit_count)

    def apply_gate(
        self,
        handle: RegisterHandle,
        gate: str,
        qubits: Sequence[int],
        params: Sequence[float],
    ) -> None:
        if gate not in self.supported_gates:
            raise BackendFailure(
                "UnsupportedGate", f"{self.name} backend cannot apply {gate}"
            )
        self._guarded("apply_gate", self._apply_gate, handle, gate, qubits, params)

    def measure(self, handle: RegisterHandle, qubits: Sequence[int]) -> list[int]:
        return self._guarded("measure", self._measure, handle, qubits)

    def reset(self, handle: RegisterHandle) -> None:
        self._guarded("reset", self._reset, handle)

    # ------------------------------------------------------------------------

    def _next_seed(self) -> Optional[int]:
        """Per-register seed drawn from the backend seed, None when unseeded."""
        if self.seed is None:
            return None
        return int(self._rng.integers(0, 2**63 - 1))

    def _guarded(self, op: str, func, *args):
        try:
            return func(*args)
        except BackendFailure:
            raise
        except MemoryError as e:
            logger.exception("{} backend ran out of memory in {}.", self.name, op)
            raise BackendFailure("OutOfMemory", str(e), fatal=True) from e
        except Exception as e:
            logger.exception("{} backend failed in {}.", self.name, op)
            raise BackendFailure(type(e).__name__, str(e)) from e

    def _allocate(self, qubit_count: int) -> RegisterHandle:
        raise NotImplementedError()

    def _apply_gate(
        self,
        handle: RegisterHandle,
        gate: str,
        qubits: Sequence[int],
        params: Sequence[float],
    ) -> None:
        raise NotImplementedError()

    def _measure(self, handle: RegisterHandle, qubits: Sequence[int]) -> list[int]:
        raise NotImplementedError()

    def _reset(self, handle: RegisterHandle) -> None:
        raise NotImplementedError()


def validate_backend(backend: Any) -> tuple[bool, str]:
    """Check an object satisfies BackendProtocol with a usable gate set.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    if not isinstance(backend, BackendProtocol):
        return False, f"{type(backend).__name__} does not implement BackendProtocol"
    if not backend.name or "/" in backend.name:
        return False, f"Invalid backend name: {backend.name!r}"
    unknown = set(backend.supported_gates) - set(GATE_ARITY)
    if unknown:
        return False, f"Unknown gates in supported_gates: {sorted(unknown)}"
    return True, ""

"""Gottesman-Knill stabilizer backend on a stim tableau.

Only Clifford operations are available. Rotations are accepted at multiples of
pi/2 (up to global phase they are Clifford); any other angle is reported as a
non-fatal `NonClifford` backend failure without touching the register.
"""

from __future__ import annotations

import math
from typing import Sequence

import stim

from qosc.types import BackendFailure

from .backend import Backend, RegisterHandle

_SINGLE = {
    "X": "x",
    "Y": "y",
    "Z": "z",
    "H": "h",
    "S": "s",
    "SDG": "s_dag",
}
_PAIR = {"CX": "cx", "CZ": "cz", "SWAP": "swap"}

# quarter turns (0..3) -> tableau method, up to global phase
_ROTATIONS = {
    "RX": (None, "sqrt_x", "x", "sqrt_x_dag"),
    "RY": (None, "sqrt_y", "y", "sqrt_y_dag"),
    "RZ": (None, "s", "z", "s_dag"),
}

_ANGLE_TOL = 1e-6


def quarter_turns(angle: float) -> int:
    """Number of pi/2 turns in `angle` (mod 4). Raises for non-Clifford angles."""
    turns = angle / (math.pi / 2)
    nearest = round(turns)
    if not math.isfinite(turns) or abs(turns - nearest) > _ANGLE_TOL:
        raise BackendFailure(
            "NonClifford", f"rotation angle {angle} is not a multiple of pi/2"
        )
    return nearest % 4


class GKBackend(Backend):
    """Stabilizer simulator, one `stim.TableauSimulator` per register."""

    name = "gk"
    supported_gates = frozenset(
        {"I", "X", "Y", "Z", "H", "S", "SDG", "RX", "RY", "RZ", "CX", "CZ", "SWAP"}
    )

    def _allocate(self, qubit_count: int) -> RegisterHandle:
        sim = stim.TableauSimulator(seed=self._next_seed())
        sim.set_num_qubits(qubit_count)
        return RegisterHandle(backend=self.name, qubit_count=qubit_count, state=sim)

    def _apply_gate(
        self,
        handle: RegisterHandle,
        gate: str,
        qubits: Sequence[int],
        params: Sequence[float],
    ) -> None:
        sim: stim.TableauSimulator = handle.state
        if gate == "I":
            return
        if gate in _SINGLE:
            getattr(sim, _SINGLE[gate])(qubits[0])
        elif gate in _PAIR:
            getattr(sim, _PAIR[gate])(qubits[0], qubits[1])
        elif gate in _ROTATIONS:
            method = _ROTATIONS[gate][quarter_turns(params[0])]
            if method is not None:
                getattr(sim, method)(qubits[0])
        else:
            raise BackendFailure("UnsupportedGate", f"no tableau operation for {gate}")

    def _measure(self, handle: RegisterHandle, qubits: Sequence[int]) -> list[int]:
        sim: stim.TableauSimulator = handle.state
        return [int(bit) for bit in sim.measure_many(*qubits)]

    def _reset(self, handle: RegisterHandle) -> None:
        sim: stim.TableauSimulator = handle.state
        sim.reset(*range(handle.qubit_count))

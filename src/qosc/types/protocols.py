"""Backend protocol: the operations the session layer needs from a simulator.

The session manager never touches simulator internals. Anything that
implements these four operations (and declares its name and gate set) can be
served, so a backend does not need to inherit from `qosc.backend.Backend`.

Example
-------
    class MyBackend:
        name = "mine"
        supported_gates = frozenset({"X", "H", "CX"})

        def allocate(self, qubit_count): ...
        def apply_gate(self, handle, gate, qubits, params): ...
        def measure(self, handle, qubits): ...
        def reset(self, handle): ...

    isinstance(MyBackend(), BackendProtocol)  # True

See Also
--------
qosc.backend : Concrete backends
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from qosc.backend import RegisterHandle


@runtime_checkable
class BackendProtocol(Protocol):
    """Uniform operation contract over a quantum register simulator."""

    name: str
    supported_gates: frozenset[str]

    def allocate(self, qubit_count: int) -> RegisterHandle:
        """Create a register of `qubit_count` qubits, all in |0>."""
        ...

    def apply_gate(
        self,
        handle: RegisterHandle,
        gate: str,
        qubits: Sequence[int],
        params: Sequence[float],
    ) -> None:
        """Apply `gate` to `qubits` (already range checked)."""
        ...

    def measure(self, handle: RegisterHandle, qubits: Sequence[int]) -> list[int]:
        """Measure `qubits` in the Z basis, returning one bit per qubit in order."""
        ...

    def reset(self, handle: RegisterHandle) -> None:
        """Return the register to |0...0> and release what it can."""
        ...

"""Steane [[7,1,3]] code backend.

Each logical qubit is a block of seven physical qubits on a stabilizer tableau.
Gates are applied transversally, which is fault tolerant for the whole gate
set below. A logical Z measurement reads the seven physical bits, corrects a
single bit flip with the Hamming parity checks and takes the parity. The block
is then re-prepared in the measured logical state so the register stays a
valid code state.

Physical layout: logical qubit `q` occupies physical qubits `7q ... 7q + 6`.

Notes
-----
Transversal S on the Steane code acts as logical S-dagger (and vice versa),
so the logical S is implemented as S-dagger on every physical qubit.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import stim

from qosc.types import BackendFailure

from .backend import Backend, RegisterHandle

BLOCK = 7

# column j is the binary expansion of j + 1, most significant bit in row 0
PARITY_CHECK = np.array(
    [
        [0, 0, 0, 1, 1, 1, 1],
        [0, 1, 1, 0, 0, 1, 1],
        [1, 0, 1, 0, 1, 0, 1],
    ],
    dtype=np.uint8,
)

# |0_L> encoder: hadamard each pivot, then copy it onto the rest of its check row
_PIVOTS = {3: (4, 5, 6), 1: (2, 5, 6), 0: (2, 4, 6)}

_TRANSVERSAL = {
    "X": "x",
    "Y": "y",
    "Z": "z",
    "H": "h",
    "S": "s_dag",
    "SDG": "s",
}
_TRANSVERSAL_PAIR = {"CX": "cx", "CZ": "cz", "SWAP": "swap"}


def decode_block(bits: Sequence[int]) -> int:
    """Logical Z value of seven measured physical bits.

    A single flipped bit is located by its syndrome and corrected before the
    parity is taken.
    """
    word = np.asarray(bits, dtype=np.uint8) % 2
    if word.shape != (BLOCK,):
        raise ValueError(f"expected {BLOCK} bits, got {word.shape}")
    syndrome = PARITY_CHECK.dot(word) % 2
    position = int(syndrome[0]) * 4 + int(syndrome[1]) * 2 + int(syndrome[2])
    if position:
        word[position - 1] ^= 1
    return int(word.sum() % 2)


def _block(q: int) -> range:
    return range(BLOCK * q, BLOCK * q + BLOCK)


class SteaneBackend(Backend):
    """Logical qubits encoded in the Steane code, simulated with stim.

    Parameters
    ----------
    seed : int, optional
        Seed for measurement outcomes and injected errors.
    error_rate : float, optional
        Probability of an X flip on each physical qubit just before a logical
        measurement. Single flips per block are corrected by the decoder.
    """

    name = "steane"
    supported_gates = frozenset(
        {"I", "X", "Y", "Z", "H", "S", "SDG", "CX", "CZ", "SWAP"}
    )

    def __init__(self, seed=None, error_rate: float = 0.0):
        super().__init__(seed=seed)
        if not 0.0 <= error_rate <= 1.0:
            raise ValueError(f"error_rate must be in [0, 1], got {error_rate}")
        self.error_rate = error_rate

    def _allocate(self, qubit_count: int) -> RegisterHandle:
        sim = stim.TableauSimulator(seed=self._next_seed())
        sim.set_num_qubits(BLOCK * qubit_count)
        for q in range(qubit_count):
            self._encode_zero(sim, q)
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
        if gate in _TRANSVERSAL:
            getattr(sim, _TRANSVERSAL[gate])(*_block(qubits[0]))
        elif gate in _TRANSVERSAL_PAIR:
            method = getattr(sim, _TRANSVERSAL_PAIR[gate])
            for a, b in zip(_block(qubits[0]), _block(qubits[1])):
                method(a, b)
        else:
            raise BackendFailure("UnsupportedGate", f"{gate} is not transversal")

    def _measure(self, handle: RegisterHandle, qubits: Sequence[int]) -> list[int]:
        sim: stim.TableauSimulator = handle.state
        results = []
        for q in qubits:
            block = list(_block(q))
            if self.error_rate > 0:
                targets = " ".join(str(p) for p in block)
                sim.do(stim.Circuit(f"X_ERROR({self.error_rate}) {targets}"))
            value = decode_block(sim.measure_many(*block))
            self._encode_zero(sim, q)
            if value:
                sim.x(*block)
            results.append(value)
        return results

    def _reset(self, handle: RegisterHandle) -> None:
        sim: stim.TableauSimulator = handle.state
        for q in range(handle.qubit_count):
            self._encode_zero(sim, q)

    @staticmethod
    def _encode_zero(sim: stim.TableauSimulator, q: int) -> None:
        offset = BLOCK * q
        sim.reset(*_block(q))
        for pivot, targets in _PIVOTS.items():
            sim.h(offset + pivot)
            for t in targets:
                sim.cx(offset + pivot, offset + t)

import math

import pytest

from qosc.backend import (
    GKBackend,
    RegisterHandle,
    SteaneBackend,
    canonical_gate,
    get_backend,
    validate_backend,
)
from qosc.backend.stabilizer import quarter_turns
from qosc.backend.steane import decode_block
from qosc.types import BackendFailure, BackendProtocol


def test_canonical_gate():
    assert canonical_gate(" cnot ") == "CX"
    assert canonical_gate("sdag") == "SDG"
    assert canonical_gate("h") == "H"


class TestGetBackend:
    def test_by_name(self):
        assert isinstance(get_backend("gk"), GKBackend)
        assert isinstance(get_backend("STEANE", seed=1), SteaneBackend)

    def test_unknown(self):
        with pytest.raises(ValueError, match="not found"):
            get_backend("statevector")

    def test_noise_only_on_steane(self):
        with pytest.raises(ValueError):
            get_backend("gk", error_rate=0.1)
        assert get_backend("steane", error_rate=0.1).error_rate == 0.1

    def test_satisfy_protocol(self):
        for name in ("gk", "steane"):
            backend = get_backend(name)
            assert isinstance(backend, BackendProtocol)
            assert validate_backend(backend) == (True, "")


def test_validate_backend_rejects():
    class NoMethods:
        name = "x"
        supported_gates = frozenset()

    ok, msg = validate_backend(NoMethods())
    assert not ok
    assert "BackendProtocol" in msg

    class WeirdGates(GKBackend):
        name = "weird"
        supported_gates = frozenset({"X", "TOFFOLI"})

    ok, msg = validate_backend(WeirdGates())
    assert not ok
    assert "TOFFOLI" in msg


class TestGKBackend:
    @pytest.fixture
    def backend(self):
        return GKBackend(seed=42)

    def test_allocate_all_zero(self, backend):
        handle = backend.allocate(4)
        assert isinstance(handle, RegisterHandle)
        assert handle.qubit_count == 4
        assert backend.measure(handle, range(4)) == [0, 0, 0, 0]

    def test_x_flips(self, backend):
        handle = backend.allocate(2)
        backend.apply_gate(handle, "X", (1,), ())
        assert backend.measure(handle, (0, 1)) == [0, 1]
        # measurement order follows the request
        assert backend.measure(handle, (1, 0)) == [1, 0]

    def test_bell_pair_correlated(self, backend):
        for _ in range(10):
            handle = backend.allocate(2)
            backend.apply_gate(handle, "H", (0,), ())
            backend.apply_gate(handle, "CX", (0, 1), ())
            a, b = backend.measure(handle, (0, 1))
            assert a == b

    def test_hzh_is_x(self, backend):
        handle = backend.allocate(1)
        for gate in ("H", "Z", "H"):
            backend.apply_gate(handle, gate, (0,), ())
        assert backend.measure(handle, (0,)) == [1]

    def test_swap(self, backend):
        handle = backend.allocate(2)
        backend.apply_gate(handle, "X", (0,), ())
        backend.apply_gate(handle, "SWAP", (0, 1), ())
        assert backend.measure(handle, (0, 1)) == [0, 1]

    def test_clifford_rotations(self, backend):
        handle = backend.allocate(1)
        backend.apply_gate(handle, "RX", (0,), (math.pi,))
        assert backend.measure(handle, (0,)) == [1]
        backend.apply_gate(handle, "RY", (0,), (-math.pi,))
        assert backend.measure(handle, (0,)) == [0]

    def test_non_clifford_rotation(self, backend):
        handle = backend.allocate(1)
        with pytest.raises(BackendFailure) as exc_info:
            backend.apply_gate(handle, "RZ", (0,), (0.3,))
        assert exc_info.value.backend_code == "NonClifford"
        assert not exc_info.value.fatal

    def test_unsupported_gate(self, backend):
        handle = backend.allocate(1)
        with pytest.raises(BackendFailure) as exc_info:
            backend.apply_gate(handle, "T", (0,), ())
        assert exc_info.value.backend_code == "UnsupportedGate"

    def test_reset(self, backend):
        handle = backend.allocate(3)
        backend.apply_gate(handle, "X", (0,), ())
        backend.apply_gate(handle, "H", (2,), ())
        backend.reset(handle)
        assert backend.measure(handle, range(3)) == [0, 0, 0]

    def test_seeded_reproducible(self):
        def run(seed):
            backend = GKBackend(seed=seed)
            outcomes = []
            for _ in range(20):
                handle = backend.allocate(1)
                backend.apply_gate(handle, "H", (0,), ())
                outcomes += backend.measure(handle, (0,))
            return outcomes

        assert run(7) == run(7)

    def test_engine_errors_wrapped(self, backend):
        handle = backend.allocate(1)
        handle.state = None
        with pytest.raises(BackendFailure) as exc_info:
            backend.measure(handle, (0,))
        assert exc_info.value.backend_code == "AttributeError"


@pytest.mark.parametrize(
    "angle, turns",
    [(0.0, 0), (math.pi / 2, 1), (math.pi, 2), (-math.pi / 2, 3), (2 * math.pi, 0)],
)
def test_quarter_turns(angle, turns):
    assert quarter_turns(angle) == turns


class TestSteane:
    def test_decode_codewords(self):
        assert decode_block([0] * 7) == 0
        assert decode_block([1] * 7) == 1
        # weight-4 codeword (a row of the parity check matrix)
        assert decode_block([0, 0, 0, 1, 1, 1, 1]) == 0

    @pytest.mark.parametrize("position", range(7))
    def test_decode_corrects_single_flip(self, position):
        bits = [0] * 7
        bits[position] = 1
        assert decode_block(bits) == 0
        bits = [1] * 7
        bits[position] = 0
        assert decode_block(bits) == 1

    @pytest.fixture
    def backend(self):
        return SteaneBackend(seed=3)

    def test_logical_zero(self, backend):
        handle = backend.allocate(2)
        assert handle.qubit_count == 2
        assert backend.measure(handle, (0, 1)) == [0, 0]

    def test_logical_x(self, backend):
        handle = backend.allocate(2)
        backend.apply_gate(handle, "X", (1,), ())
        assert backend.measure(handle, (0, 1)) == [0, 1]
        # measured blocks are re-prepared in the measured state
        assert backend.measure(handle, (0, 1)) == [0, 1]

    def test_logical_s_squared_is_z(self, backend):
        handle = backend.allocate(1)
        for gate in ("H", "S", "S", "H"):
            backend.apply_gate(handle, gate, (0,), ())
        assert backend.measure(handle, (0,)) == [1]

    def test_logical_bell_pair(self, backend):
        for _ in range(5):
            handle = backend.allocate(2)
            backend.apply_gate(handle, "H", (0,), ())
            backend.apply_gate(handle, "CX", (0, 1), ())
            a, b = backend.measure(handle, (0, 1))
            assert a == b

    def test_reset(self, backend):
        handle = backend.allocate(1)
        backend.apply_gate(handle, "X", (0,), ())
        backend.reset(handle)
        assert backend.measure(handle, (0,)) == [0]

    def test_no_rotations(self, backend):
        handle = backend.allocate(1)
        with pytest.raises(BackendFailure) as exc_info:
            backend.apply_gate(handle, "RX", (0,), (math.pi,))
        assert exc_info.value.backend_code == "UnsupportedGate"

    def test_invalid_error_rate(self):
        with pytest.raises(ValueError):
            SteaneBackend(error_rate=1.5)

    @pytest.mark.slow
    def test_low_noise_is_corrected_mostly(self):
        backend = SteaneBackend(seed=11, error_rate=0.01)
        handle = backend.allocate(8)
        backend.apply_gate(handle, "X", (3,), ())
        flips = 0
        for _ in range(50):
            bits = backend.measure(handle, range(8))
            expected = [0, 0, 0, 1, 0, 0, 0, 0]
            flips += sum(b != e for b, e in zip(bits, expected))
        # logical error rate ~21 p^2 per block, far below one in 50*8 here on average
        assert flips <= 5

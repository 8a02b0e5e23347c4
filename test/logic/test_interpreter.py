import math

import pytest

from qosc.backend import GKBackend, SteaneBackend
from qosc.server import Interpreter, Route, check_range, parse_args
from qosc.types import CMD, Command, InvalidArguments, Message, OutOfRange


@pytest.fixture
def interpreter():
    return Interpreter(
        {"gk": GKBackend.supported_gates, "steane": SteaneBackend.supported_gates},
        max_qubits=16,
    )


def _interpret(interpreter, address, *args):
    _, namespace, kind = address.split("/")
    return interpreter.interpret(Route(namespace, kind), Message(address, args))


class TestParseArgs:
    def test_trailing_string_is_tag(self):
        parsed, tag = parse_args(CMD.INIT, [3, "abc"])
        assert parsed == {"qubit_count": 3}
        assert tag == "abc"

    def test_gate_tag_without_params(self):
        parsed, tag = parse_args(CMD.GATE, ["H", [0], "t"])
        assert parsed == {"gate": "H", "qubits": (0,), "params": ()}
        assert tag == "t"

    def test_gate_tag_with_params(self):
        parsed, tag = parse_args(CMD.GATE, ["RX", [0], [1.0], "t"])
        assert parsed["params"] == (1.0,)
        assert tag == "t"

    def test_reset_tag(self):
        assert parse_args(CMD.RESET, ["t"]) == ({}, "t")

    def test_bare_int_is_one_qubit_list(self):
        parsed, _ = parse_args(CMD.MEASURE, [2])
        assert parsed["qubits"] == (2,)

    def test_too_many_arguments(self):
        with pytest.raises(InvalidArguments) as exc_info:
            parse_args(CMD.INIT, [3, 4])
        assert exc_info.value.field == 1

    def test_missing_argument(self):
        with pytest.raises(InvalidArguments, match="missing qubit_count") as exc_info:
            parse_args(CMD.INIT, [])
        assert exc_info.value.field == 0

    def test_bool_is_not_int(self):
        with pytest.raises(InvalidArguments):
            parse_args(CMD.INIT, [True])

    def test_non_finite_params(self):
        with pytest.raises(InvalidArguments) as exc_info:
            parse_args(CMD.GATE, ["RX", [0], [math.inf]])
        assert exc_info.value.field == 2


class TestInterpret:
    def test_init(self, interpreter):
        cmd = _interpret(interpreter, "/gk/init", 3)
        assert cmd == Command(
            kind=CMD.INIT, namespace="gk", address="/gk/init", qubit_count=3
        )

    @pytest.mark.parametrize("n", [0, -1, 17])
    def test_init_out_of_range(self, interpreter, n):
        with pytest.raises(OutOfRange) as exc_info:
            _interpret(interpreter, "/gk/init", n)
        assert exc_info.value.to_args()[0] == "OutOfRange"
        assert exc_info.value.to_args()[2] == 0

    def test_init_wrong_type(self, interpreter):
        with pytest.raises(InvalidArguments) as exc_info:
            _interpret(interpreter, "/gk/init", 2.5)
        assert exc_info.value.field == 0

    def test_gate_aliases(self, interpreter):
        cmd = _interpret(interpreter, "/gk/gate", "cnot", [0, 1])
        assert cmd.gate == "CX"
        assert cmd.qubits == (0, 1)

    def test_gate_with_param(self, interpreter):
        cmd = _interpret(interpreter, "/gk/gate", "rz", [0], [math.pi / 2])
        assert cmd.gate == "RZ"
        assert cmd.params == (pytest.approx(math.pi / 2),)

    def test_unknown_gate(self, interpreter):
        with pytest.raises(InvalidArguments, match="Unknown gate") as exc_info:
            _interpret(interpreter, "/gk/gate", "FOO", [0])
        assert exc_info.value.field == 0

    def test_gate_not_supported_by_backend(self, interpreter):
        with pytest.raises(InvalidArguments, match="not supported"):
            _interpret(interpreter, "/steane/gate", "RX", [0], [math.pi])

    def test_gate_arity(self, interpreter):
        with pytest.raises(InvalidArguments) as exc_info:
            _interpret(interpreter, "/gk/gate", "CX", [0])
        assert exc_info.value.field == 1

    def test_gate_param_count(self, interpreter):
        with pytest.raises(InvalidArguments) as exc_info:
            _interpret(interpreter, "/gk/gate", "RX", [0])
        assert exc_info.value.field == 2

    def test_duplicate_qubits(self, interpreter):
        with pytest.raises(InvalidArguments, match="distinct"):
            _interpret(interpreter, "/gk/gate", "CX", [1, 1])

    def test_negative_qubit(self, interpreter):
        with pytest.raises(OutOfRange) as exc_info:
            _interpret(interpreter, "/gk/measure", [0, -2])
        assert exc_info.value.field == 0

    def test_measure_all(self, interpreter):
        cmd = _interpret(interpreter, "/gk/measure", [])
        assert cmd.qubits == ()

    def test_tag_carried(self, interpreter):
        cmd = _interpret(interpreter, "/gk/query", "q-1")
        assert cmd.kind == CMD.QUERY
        assert cmd.tag == "q-1"


def test_check_range():
    cmd = Command(kind=CMD.GATE, namespace="gk", address="/gk/gate", gate="X", qubits=(3,))
    check_range(cmd, 4)
    with pytest.raises(OutOfRange) as exc_info:
        check_range(cmd, 3)
    assert exc_info.value.field == 1

    measure = Command(kind=CMD.MEASURE, namespace="gk", address="/gk/measure", qubits=(5,))
    with pytest.raises(OutOfRange) as exc_info:
        check_range(measure, 2)
    assert exc_info.value.field == 0

# -*- coding: utf-8 -*-
"""
Command interpretation: decoded arguments -> typed Command.

Each handler kind has an argument schema. Arguments are checked for count and
type first (InvalidArguments, with the index of the offending argument), then
for values that can be checked without a session (OutOfRange / InvalidArguments).
Qubit indices are checked against the session's register size separately, by
`check_range`, once the session guard is held.

Schemas
-------
```
init     [qubit_count:int]
gate     [gate:str, qubits:int-list, params:float-list (optional)]
measure  [qubits:int-list]            (empty list = every qubit)
reset    []
query    []
```
Any request may carry one extra trailing string, the transaction tag, which is
echoed at the end of the reply.
"""

from __future__ import annotations

import math
import types
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from qosc.backend import GATE_ARITY, canonical_gate
from qosc.types import (
    CMD,
    Command,
    InvalidArguments,
    Message,
    OutOfRange,
)
from qosc.util import DEFAULT_MAX_QUBITS

from .router import Route

ARG = types.SimpleNamespace()
ARG.INT = "int"
ARG.STR = "string"
ARG.INT_LIST = "int-list"
ARG.FLOAT_LIST = "float-list"


@dataclass(frozen=True)
class ArgSpec:
    name: str
    kind: str
    optional: bool = False


SCHEMAS: dict[str, tuple[ArgSpec, ...]] = {
    CMD.INIT: (ArgSpec("qubit_count", ARG.INT),),
    CMD.GATE: (
        ArgSpec("gate", ARG.STR),
        ArgSpec("qubits", ARG.INT_LIST),
        ArgSpec("params", ARG.FLOAT_LIST, optional=True),
    ),
    CMD.MEASURE: (ArgSpec("qubits", ARG.INT_LIST),),
    CMD.RESET: (),
    CMD.QUERY: (),
}

# index of the qubit-list argument, for OutOfRange replies
QUBITS_FIELD = {CMD.GATE: 1, CMD.MEASURE: 0}


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return (_is_int(value) or isinstance(value, float)) and not isinstance(value, bool)


def _split_tag(schema: tuple[ArgSpec, ...], args: list) -> tuple[list, Optional[str]]:
    n_required = sum(1 for spec in schema if not spec.optional)
    if args and isinstance(args[-1], str):
        if len(args) > len(schema):
            return args[:-1], args[-1]
        if len(args) > n_required and schema[len(args) - 1].kind != ARG.STR:
            return args[:-1], args[-1]
    return args, None


def _convert(spec: ArgSpec, index: int, value):
    match spec.kind:
        case ARG.INT:
            if not _is_int(value):
                raise InvalidArguments(
                    f"{spec.name} must be an int, got {type(value).__name__}", index
                )
            return value
        case ARG.STR:
            if not isinstance(value, str):
                raise InvalidArguments(
                    f"{spec.name} must be a string, got {type(value).__name__}", index
                )
            return value
        case ARG.INT_LIST:
            if _is_int(value):
                return (value,)
            if not isinstance(value, list) or not all(_is_int(v) for v in value):
                raise InvalidArguments(f"{spec.name} must be a list of ints", index)
            return tuple(value)
        case ARG.FLOAT_LIST:
            if _is_number(value):
                value = [value]
            if not isinstance(value, list) or not all(_is_number(v) for v in value):
                raise InvalidArguments(f"{spec.name} must be a list of floats", index)
            floats = tuple(float(v) for v in value)
            if not all(math.isfinite(v) for v in floats):
                raise InvalidArguments(f"{spec.name} must be finite", index)
            return floats
        case _:
            raise ValueError(f"Invalid argument kind: {spec.kind}")


def parse_args(kind: str, args: Sequence) -> tuple[dict, Optional[str]]:
    """Check count and types against the schema of `kind`.

    Returns
    -------
    tuple[dict, Optional[str]]
        (converted values by argument name, transaction tag)
    """
    schema = SCHEMAS[kind]
    values, tag = _split_tag(schema, list(args))
    n_required = sum(1 for spec in schema if not spec.optional)
    if len(values) > len(schema):
        raise InvalidArguments(
            f"{kind} takes at most {len(schema)} arguments, got {len(values)}",
            len(schema),
        )
    if len(values) < n_required:
        raise InvalidArguments(
            f"{kind} needs {n_required} arguments, got {len(values)}"
            + f" (missing {schema[len(values)].name})",
            len(values),
        )
    parsed = {}
    for index, spec in enumerate(schema):
        if index < len(values):
            parsed[spec.name] = _convert(spec, index, values[index])
        else:
            parsed[spec.name] = ()
    return parsed, tag


def _check_qubit_list(qubits: tuple[int, ...], field: int) -> None:
    for q in qubits:
        if q < 0:
            raise OutOfRange(f"qubit index {q} is negative", field)
    if len(set(qubits)) != len(qubits):
        raise InvalidArguments(
            f"qubit indices must be distinct, got {list(qubits)}", field
        )


class Interpreter:
    """Builds Commands from routed messages.

    Parameters
    ----------
    supported_gates : Mapping[str, Iterable[str]]
        Canonical gate names accepted per backend namespace.
    max_qubits : int
        Largest register an init may request.
    """

    def __init__(
        self,
        supported_gates: Mapping[str, Iterable[str]],
        max_qubits: int = DEFAULT_MAX_QUBITS,
    ):
        self.supported_gates = {ns: frozenset(g) for ns, g in supported_gates.items()}
        self.max_qubits = max_qubits

    def interpret(self, route: Route, message: Message) -> Command:
        parsed, tag = parse_args(route.kind, message.args)
        common = dict(
            kind=route.kind, namespace=route.namespace, address=message.address, tag=tag
        )

        match route.kind:
            case CMD.INIT:
                n = parsed["qubit_count"]
                if not 1 <= n <= self.max_qubits:
                    raise OutOfRange(
                        f"qubit_count must be in [1, {self.max_qubits}], got {n}", 0
                    )
                return Command(qubit_count=n, **common)
            case CMD.GATE:
                return self._gate_command(route.namespace, parsed, common)
            case CMD.MEASURE:
                qubits = parsed["qubits"]
                _check_qubit_list(qubits, 0)
                return Command(qubits=qubits, **common)
            case CMD.RESET | CMD.QUERY:
                return Command(**common)
            case _:
                raise ValueError(f"Invalid handler kind: {route.kind}")

    def _gate_command(self, namespace: str, parsed: dict, common: dict) -> Command:
        gate = canonical_gate(parsed["gate"])
        if gate not in GATE_ARITY:
            raise InvalidArguments(f"Unknown gate: {parsed['gate']}", 0)
        if gate not in self.supported_gates.get(namespace, ()):
            raise InvalidArguments(
                f"Gate {gate} is not supported by the {namespace} backend", 0
            )
        n_qubits, n_params = GATE_ARITY[gate]
        qubits, params = parsed["qubits"], parsed["params"]
        if len(qubits) != n_qubits:
            raise InvalidArguments(
                f"{gate} acts on {n_qubits} qubit(s), got {len(qubits)}", 1
            )
        _check_qubit_list(qubits, 1)
        if len(params) != n_params:
            raise InvalidArguments(
                f"{gate} takes {n_params} parameter(s), got {len(params)}", 2
            )
        return Command(gate=gate, qubits=qubits, params=params, **common)


def check_range(command: Command, qubit_count: int) -> None:
    """Reject any qubit index outside [0, qubit_count)."""
    if command.kind not in QUBITS_FIELD:
        return
    for q in command.qubits:
        if q >= qubit_count:
            raise OutOfRange(
                f"qubit index {q} out of range for a {qubit_count} qubit register",
                QUBITS_FIELD[command.kind],
            )

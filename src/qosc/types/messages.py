"""Message types and constants for client-server communication."""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from typing import Optional

from mashumaro.mixins.msgpack import DataClassMessagePackMixin

# ----------------
# Handler kinds
# ----------------

CMD = types.SimpleNamespace()
CMD.INIT = "init"
CMD.GATE = "gate"
CMD.MEASURE = "measure"
CMD.RESET = "reset"
CMD.QUERY = "query"
CMD.ALL = (CMD.INIT, CMD.GATE, CMD.MEASURE, CMD.RESET, CMD.QUERY)

REPLY_SUFFIX = "/reply"
ERROR_SUFFIX = "/error"
STATUS_OK = "ok"

# OSC arguments as decoded: int32, float32, str, blob, or an OSC array of them
OscArg = int | float | str | bytes | list
ClientId = tuple[str, int]


@dataclass(frozen=True)
class Message:
    """A decoded OSC message: an address and its typed arguments."""

    address: str
    args: tuple = ()

    def __repr__(self):
        shown = []
        for arg in self.args:
            if isinstance(arg, bytes) and len(arg) > 16:
                shown.append(f"<blob {len(arg)}B>")
            else:
                shown.append(repr(arg))
        return f"Message({self.address} [{', '.join(shown)}])"


@dataclass(frozen=True)
class Command:
    """A validated request, built by the interpreter only."""

    kind: str
    namespace: str
    address: str
    qubit_count: int = 0  # init only
    gate: str = ""
    qubits: tuple[int, ...] = ()
    params: tuple[float, ...] = ()
    tag: Optional[str] = None


@dataclass(frozen=True)
class Reply:
    """An outgoing message and who it goes to."""

    ok: bool
    address: str
    args: tuple
    destination: ClientId

    def to_message(self) -> Message:
        return Message(self.address, self.args)


@dataclass(kw_only=True)
class SessionInfo(DataClassMessagePackMixin):
    """Snapshot of a session, sent as the blob payload of a query reply."""

    client: str
    backend: str
    qubit_count: int
    created_at: float  # unix time
    idle_seconds: float
    degraded: bool
    commands_executed: int
    metadata: dict[str, str] = field(default_factory=dict)

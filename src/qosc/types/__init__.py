"""
Message types, error taxonomy and backend protocol.

The qosc.types package is the vocabulary shared by the server layers:

1. Messages (messages.py)
    - `Message`: a decoded OSC address plus typed arguments
    - `Command`: a validated request, produced only by the interpreter
    - `Reply`: an outgoing message and its destination
    - `SessionInfo`: session snapshot, serialised with MessagePack

2. Errors (errors.py)
    - Protocol, command, session and backend errors, each with a reply code

3. Backend protocol (protocols.py)
    - The four operations every simulator backend provides

Examples
--------
Handling an error reply client-side:
```python
reply = await client.measure([7])
if reply.address.endswith(ERROR_SUFFIX):
    code, message = reply.args[:2]
```

See Also
--------
qosc.server : Transport, routing, interpretation and sessions
qosc.backend : Simulator backends
"""

from __future__ import annotations

from .errors import (
    BackendFailure,
    CommandError,
    CommsError,
    InvalidArguments,
    NoActiveSession,
    OutOfRange,
    ProtocolError,
    QoscError,
    SessionError,
    SessionExpired,
    UnknownCommand,
)
from .messages import (
    CMD,
    ERROR_SUFFIX,
    REPLY_SUFFIX,
    STATUS_OK,
    ClientId,
    Command,
    Message,
    OscArg,
    Reply,
    SessionInfo,
)
from .protocols import BackendProtocol

__all__ = [
    "BackendFailure",
    "BackendProtocol",
    "CMD",
    "ClientId",
    "Command",
    "CommandError",
    "CommsError",
    "ERROR_SUFFIX",
    "InvalidArguments",
    "Message",
    "NoActiveSession",
    "OscArg",
    "OutOfRange",
    "ProtocolError",
    "QoscError",
    "REPLY_SUFFIX",
    "Reply",
    "STATUS_OK",
    "SessionError",
    "SessionExpired",
    "SessionInfo",
    "UnknownCommand",
]

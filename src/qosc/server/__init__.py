# -*- coding: utf-8 -*-
"""
OSC server and client for qosc.

The server binds one UDP socket and serves one or more simulator backends,
each under its own address namespace. Every client (host, port) gets its own
session: an exclusively owned qubit register that persists across requests
until reset, replaced by a new init, or reclaimed after an idle timeout.

Layers, in the order a datagram passes through them:

- codec: OSC bytes <-> Message
- router: address -> (namespace, handler kind)
- dispatch: per-client FIFO lanes over a bounded work pool
- interpreter: Message -> validated Command
- session: per-client registers, guards and idle expiry
- replies: result or error -> Reply

Examples
--------
Serving the stabilizer backend on a free port:
```python
from qosc.backend import get_backend
from qosc.server import OscServer, OscClient

async with OscServer(get_backend("gk"), port=0) as server:
    host, port = server.local_address
    async with OscClient(host, port, namespace="gk") as client:
        await client.init(3)
```

See Also
--------
qosc.server.server : Server composition and lifecycle
qosc.server.client : Asyncio client
qosc.config : INI server profiles
"""

from __future__ import annotations

from .client import OscClient
from .dispatch import DROP_POLICIES, Dispatcher, WorkUnit
from .interpreter import Interpreter, check_range, parse_args
from .registry import (
    get_servers_dir,
    kill_qosc_servers,
    list_running_servers,
    register_server,
    unregister_server,
)
from .replies import blob_to_bits, bits_to_blob, error_reply, success_reply
from .router import Route, Router, command_address
from .server import OscServer, start_server
from .session import Session, SessionManager
from .transport import UdpEndpoint

__all__ = [
    "DROP_POLICIES",
    "Dispatcher",
    "Interpreter",
    "OscClient",
    "OscServer",
    "Route",
    "Router",
    "Session",
    "SessionManager",
    "UdpEndpoint",
    "WorkUnit",
    "bits_to_blob",
    "blob_to_bits",
    "check_range",
    "command_address",
    "error_reply",
    "get_servers_dir",
    "kill_qosc_servers",
    "list_running_servers",
    "parse_args",
    "register_server",
    "start_server",
    "success_reply",
    "unregister_server",
]

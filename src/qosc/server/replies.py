# -*- coding: utf-8 -*-
"""
Reply encoding.

```
success:  <request address>/reply  [payload..., tag?]
error:    <request address>/error  [code, message, field?, tag?]
```

Payloads: init, gate and reset reply `["ok"]`; measure replies one blob with a
byte (0 or 1) per measured qubit, in request order; query replies
`[qubit_count, degraded, idle_seconds, SessionInfo msgpack blob]`.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from qosc.types import (
    ERROR_SUFFIX,
    REPLY_SUFFIX,
    STATUS_OK,
    ClientId,
    Command,
    QoscError,
    Reply,
    SessionInfo,
)


def bits_to_blob(bits: Sequence[int]) -> bytes:
    return np.asarray(bits, dtype=np.uint8).tobytes()


def blob_to_bits(blob: bytes) -> list[int]:
    return np.frombuffer(blob, dtype=np.uint8).astype(int).tolist()


def ok_payload() -> list:
    return [STATUS_OK]


def measure_payload(bits: Sequence[int]) -> list:
    return [bits_to_blob(bits)]


def query_payload(info: SessionInfo) -> list:
    return [
        info.qubit_count,
        int(info.degraded),
        float(info.idle_seconds),
        info.to_msgpack(),
    ]


def success_reply(command: Command, payload: list, destination: ClientId) -> Reply:
    args = list(payload)
    if command.tag is not None:
        args.append(command.tag)
    return Reply(
        ok=True,
        address=command.address + REPLY_SUFFIX,
        args=tuple(args),
        destination=destination,
    )


def error_reply(
    address: str,
    error: QoscError,
    destination: ClientId,
    tag: Optional[str] = None,
) -> Reply:
    args = error.to_args()
    if tag is not None:
        args.append(tag)
    return Reply(
        ok=False,
        address=address + ERROR_SUFFIX,
        args=tuple(args),
        destination=destination,
    )

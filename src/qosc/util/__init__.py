# -*- coding: utf-8 -*-
"""
Utility functions and constants for qosc.

- Default network, session and queue settings (`qosc.util.defaults`)
- Logging configuration and management (`qosc.util.logging`)

Examples
--------
Logging a client script to the terminal:
```python
from qosc.util import start_client_log
start_client_log(log_to_file=False, log_to_stdout=True, log_level="DEBUG")
```
"""

from .defaults import (
    DEFAULT_BACKEND,
    DEFAULT_DROP_POLICY,
    DEFAULT_HOST_ADDR,
    DEFAULT_INBOX_SIZE,
    DEFAULT_LOGLEVEL,
    DEFAULT_MAX_PENDING,
    DEFAULT_MAX_QUBITS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_PORT,
    DEFAULT_SESSION_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_TIMEOUT,
    DEFAULT_TOMBSTONE_TTL,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    LOG_FORMAT,
    clear_log,
    format_error_response,
    log_default_path,
    start_client_log,
    start_log,
    start_server_log,
)

__all__ = [
    "DEFAULT_BACKEND",
    "DEFAULT_DROP_POLICY",
    "DEFAULT_HOST_ADDR",
    "DEFAULT_INBOX_SIZE",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_MAX_PENDING",
    "DEFAULT_MAX_QUBITS",
    "DEFAULT_MAX_SESSIONS",
    "DEFAULT_PORT",
    "DEFAULT_SESSION_TIMEOUT",
    "DEFAULT_SWEEP_INTERVAL",
    "DEFAULT_TIMEOUT",
    "DEFAULT_TOMBSTONE_TTL",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "LOG_FORMAT",
    "clear_log",
    "format_error_response",
    "log_default_path",
    "start_client_log",
    "start_log",
    "start_server_log",
]

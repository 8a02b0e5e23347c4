"""Error taxonomy for the command server.

Every error that can be answered carries a `code` string, which is the first
argument of the error reply sent back to the client. ProtocolError is the one
exception: an undecodable datagram has no trustworthy sender, so it is logged
and dropped.

Hierarchy
---------
```
QoscError
├── ProtocolError
├── CommandError
│   ├── UnknownCommand
│   ├── InvalidArguments
│   └── OutOfRange
├── SessionError
│   ├── NoActiveSession
│   └── SessionExpired
└── BackendFailure
```
"""

from __future__ import annotations


class QoscError(Exception):
    """Base exception for all errors raised while serving a request."""

    code: str = "Error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_args(self) -> list:
        """Arguments of the error reply, before any transaction tag."""
        return [self.code, self.message]


class ProtocolError(QoscError):
    """Raised when a datagram cannot be decoded into a single message."""

    code = "ProtocolError"


class CommandError(QoscError):
    """Base for errors in the request itself. Session state is untouched."""

    pass


class UnknownCommand(CommandError):
    code = "UnknownCommand"


class _FieldError(CommandError):
    def __init__(self, message: str = "", field: int = -1):
        super().__init__(message)
        self.field = field

    def to_args(self) -> list:
        return [self.code, self.message, self.field]


class InvalidArguments(_FieldError):
    """Wrong argument count or type. `field` is the offending argument index."""

    code = "InvalidArguments"


class OutOfRange(_FieldError):
    """A well typed argument outside its allowed range (e.g. a qubit index)."""

    code = "OutOfRange"


class SessionError(QoscError):
    """Base for errors that require the client to send a fresh init."""

    hint = "send init to start a new session"

    def __init__(self, message: str = ""):
        super().__init__(f"{message}; {self.hint}" if message else self.hint)


class NoActiveSession(SessionError):
    code = "NoActiveSession"


class SessionExpired(SessionError):
    code = "SessionExpired"


class BackendFailure(QoscError):
    """Wraps a failure reported by the simulator.

    A non-fatal failure leaves the session alive but degraded, the client can
    recover with reset or init. A fatal failure destroys the session.
    """

    code = "BackendFailure"

    def __init__(self, code: str, message: str = "", fatal: bool = False):
        super().__init__(message)
        self.backend_code = code
        self.fatal = fatal

    def to_args(self) -> list:
        return [self.code, self.message, self.backend_code]


class CommsError(Exception):
    """Raised client-side when no reply arrives in time."""

    pass

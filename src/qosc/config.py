"""Server configuration handling for qosc.

Configurations are INI sections, one per named server profile:

```
[gk]
backend = gk
host = 127.0.0.1
port = 9000
session_timeout = 300
drop_policy = newest

[steane]
backend = steane
error_rate = 0.001
seed = 123
```

Keys not given fall back to the `ServerConfig` defaults. `session_timeout` and
`seed` accept `none`.

Search order
------------
1. ~/.qosc/servers.ini (any section, case-insensitive)
2. package default qosc/sysconfig/servers/<name>.ini
"""

from __future__ import annotations

import typing
from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from loguru import logger
from mashumaro import DataClassDictMixin

from qosc.backend import BACKENDS
from qosc.server.dispatch import DROP_POLICIES
from qosc.util import (
    DEFAULT_BACKEND,
    DEFAULT_DROP_POLICY,
    DEFAULT_HOST_ADDR,
    DEFAULT_INBOX_SIZE,
    DEFAULT_MAX_PENDING,
    DEFAULT_MAX_QUBITS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_PORT,
    DEFAULT_SESSION_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_TOMBSTONE_TTL,
)

_NONE_VALUES = ("", "none", "null")


@dataclass
class ServerConfig(DataClassDictMixin):
    """Everything needed to compose and run a server.

    Attributes
    ----------
    name : str
        Profile name (the INI section).
    backend : str
        Backend served, also the address namespace ("/gk/...").
    host, port : str, int
        Bind address. Port 0 picks a free port.
    max_qubits : int
        Largest register an init may request.
    max_sessions : int
        Concurrent sessions allowed; further inits get a SessionLimit failure.
    session_timeout : float or None
        Idle seconds before a session is reclaimed, None to keep sessions forever.
    sweep_interval : float
        Seconds between idle sweeps.
    tombstone_ttl : float
        Seconds an expired client keeps receiving SessionExpired.
    max_pending, inbox_size : int
        Bounds of the work pool and the datagram inbox.
    drop_policy : str
        "newest" or "oldest", which work unit to drop when the pool is full.
    seed : int or None
        Backend seed, for reproducible measurements.
    error_rate : float
        Physical error rate (steane backend only).
    offload_backend : bool
        Run backend calls in worker threads.
    """

    name: str = DEFAULT_BACKEND
    backend: str = DEFAULT_BACKEND
    host: str = DEFAULT_HOST_ADDR
    port: int = DEFAULT_PORT
    max_qubits: int = DEFAULT_MAX_QUBITS
    max_sessions: int = DEFAULT_MAX_SESSIONS
    session_timeout: Optional[float] = DEFAULT_SESSION_TIMEOUT
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    tombstone_ttl: float = DEFAULT_TOMBSTONE_TTL
    max_pending: int = DEFAULT_MAX_PENDING
    inbox_size: int = DEFAULT_INBOX_SIZE
    drop_policy: str = DEFAULT_DROP_POLICY
    seed: Optional[int] = None
    error_rate: float = 0.0
    offload_backend: bool = True


def validate_server_config(config: ServerConfig) -> tuple[bool, str]:
    """Validate a server configuration.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    if config.backend.lower() not in BACKENDS:
        return False, f"Invalid backend: {config.backend}"
    if config.drop_policy not in DROP_POLICIES:
        return False, f"Invalid drop_policy: {config.drop_policy}"
    if not 0 <= config.port <= 65535:
        return False, f"Invalid port: {config.port}"
    if config.max_qubits < 1:
        return False, "max_qubits must be at least 1"
    if config.max_sessions < 1:
        return False, "max_sessions must be at least 1"
    if config.session_timeout is not None and config.session_timeout <= 0:
        return False, "session_timeout must be positive (or none)"
    if config.sweep_interval <= 0:
        return False, "sweep_interval must be positive"
    if config.max_pending < 1 or config.inbox_size < 1:
        return False, "max_pending and inbox_size must be at least 1"
    if not 0.0 <= config.error_rate <= 1.0:
        return False, "error_rate must be in [0, 1]"
    if config.error_rate and config.backend.lower() != "steane":
        return False, f"Backend {config.backend} does not model physical errors"
    return True, ""


def _read_value(section: SectionProxy, key: str, hint) -> object:
    raw = section.get(key)
    args = typing.get_args(hint)
    if args and type(None) in args:
        if raw.strip().lower() in _NONE_VALUES:
            return None
        hint = next(a for a in args if a is not type(None))
    if hint is bool:
        return section.getboolean(key)
    if hint is int:
        return section.getint(key)
    if hint is float:
        return section.getfloat(key)
    return raw.strip()


def config_from_section(section: SectionProxy) -> ServerConfig:
    """Build and validate a ServerConfig from one INI section."""
    hints = typing.get_type_hints(ServerConfig)
    known = {f.name for f in fields(ServerConfig)}
    values = {"name": section.name}
    for key in section:
        if key not in known:
            logger.warning("Ignoring unknown key {} in [{}]", key, section.name)
            continue
        try:
            values[key] = _read_value(section, key, hints[key])
        except ValueError as e:
            raise ValueError(f"Invalid value for {key} in [{section.name}]: {e}") from e
    config = ServerConfig.from_dict(values)
    is_valid, msg = validate_server_config(config)
    if not is_valid:
        raise ValueError(f"Invalid server config [{section.name}]: {msg}")
    return config


def user_config_file() -> Path:
    return Path.home() / ".qosc" / "servers.ini"


def package_config_dir() -> Path:
    return Path(__file__).parent / "sysconfig" / "servers"


def load_server_config(name: str) -> ServerConfig:
    """Load a server configuration by profile name.

    User configs take precedence over package defaults.

    Raises
    ------
    ValueError
        If no section of that name exists, or it does not validate.
    """
    user_file = user_config_file()
    package_file = package_config_dir() / f"{name.lower()}.ini"

    for path in (user_file, package_file):
        if not path.exists():
            continue
        config = ConfigParser()
        config.read(path)
        for section in config.sections():
            if section.lower() == name.lower():
                logger.debug("Loading server config [{}] from {}", section, path)
                return config_from_section(config[section])

    raise ValueError(
        f"Server config '{name}' not found in:\n"
        f"- User config: {user_file}\n"
        f"- Package config: {package_file}"
    )


def list_available_configs() -> dict[str, str]:
    """Map each known profile name to its source ('user' or 'package')."""
    configs = {}
    if package_config_dir().exists():
        for file in package_config_dir().glob("*.ini"):
            config = ConfigParser()
            config.read(file)
            for section in config.sections():
                configs[section] = "package"

    if user_config_file().exists():
        config = ConfigParser()
        config.read(user_config_file())
        for section in config.sections():
            configs[section] = "user"

    return configs

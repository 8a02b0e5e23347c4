# -*- coding: utf-8 -*-
"""
Logging setup for the qosc server and client.

Both sides log through loguru. `start_log` removes the default stderr sink and
installs the sinks of one role:

- server: ~/.qosc/server.log, rotated at 10 MB since a server may run for days
- client: ~/.qosc/client.log, no rotation

Each record carries its role, so a server and a client started from the same
shell (e.g. in the tests) stay distinguishable on stderr. Levels used by the
server: undecodable datagrams and queue drops at WARNING, requests and replies
at DEBUG, session lifecycle at INFO, backend failures at ERROR.
"""

import os
import pathlib
import sys
import traceback
from typing import Optional

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | {extra[role]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_ROLES = {
    "server": {"filename": "server.log", "rotation": "10 MB"},
    "client": {"filename": "client.log", "rotation": None},
}


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def log_default_path(role: str) -> str:
    return str(pathlib.Path.home().joinpath(".qosc", _ROLES[role]["filename"]))


def start_log(
    role: str,
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: Optional[str] = None,
    clear_prev: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
) -> Optional[str]:
    """Replace the loguru sinks with those of `role` ("server" or "client").

    Returns
    -------
    str or None
        The log file in use, None when not logging to a file.
    """
    if role not in _ROLES:
        raise ValueError(f"Unknown log role: {role}, expected one of {list(_ROLES)}")
    log_path = os.path.abspath(log_path) if log_path else log_default_path(role)

    if log_to_file and clear_prev:
        clear_log(log_path)

    # first remove (default) stderr output
    logger.remove()
    logger.configure(extra={"role": role})

    if log_to_file:
        logger.add(
            log_path,
            level=log_level,
            format=LOG_FORMAT,
            enqueue=True,
            colorize=False,
            rotation=_ROLES[role]["rotation"],
        )
    if log_to_stdout:
        logger.add(
            sys.stderr, level=log_level, format=LOG_FORMAT, enqueue=True, colorize=True
        )

    if log_to_file:
        logger.info("{} log started at {}", role.capitalize(), log_path)
        return log_path
    logger.info("{} log started.", role.capitalize())
    return None


def start_server_log(**kwargs) -> Optional[str]:
    return start_log("server", **kwargs)


def start_client_log(**kwargs) -> Optional[str]:
    return start_log("client", **kwargs)


def clear_log(log_path: str):
    """
    Clear the log file at the given path, if there is one.

    Arguments
    ---------
    log_path : str
        The path to the log file, see `log_default_path`.
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                "Could not clear log file {}. Permission denied. Continuing.", log_path
            )

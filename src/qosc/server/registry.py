"""Registry of running qosc servers, one JSON file per server process."""

import json
import os
from datetime import datetime
from pathlib import Path

import psutil
from loguru import logger


def get_servers_dir() -> Path:
    """Get the directory for storing server PID files."""
    servers_dir = Path.home() / ".qosc" / "running_servers"
    servers_dir.mkdir(parents=True, exist_ok=True)
    return servers_dir


def register_server(host: str, port: int, backend: str, config_name: str = "") -> Path:
    """Register a running server in the PID directory."""
    pid = os.getpid()
    server_info = {
        "pid": pid,
        "timestamp": datetime.now().strftime("%Y-%m-%d_%H:%M:%S"),
        "host": host,
        "port": port,
        "backend": backend,
        "config": config_name,
    }
    pid_file = get_servers_dir() / f"server_{pid}.json"
    with pid_file.open("w") as f:
        json.dump(server_info, f, indent=2)
    return pid_file


def unregister_server(pid_file: Path) -> None:
    try:
        pid_file.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Could not remove {}: {}", pid_file, e)


def list_running_servers() -> list[dict]:
    """Get info about all registered servers, with a `running` flag."""
    servers = []
    for pid_file in get_servers_dir().glob("server_*.json"):
        try:
            with pid_file.open() as f:
                server_info = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable server file {}: {}", pid_file, e)
            continue
        server_info["running"] = psutil.pid_exists(server_info.get("pid", -1))
        servers.append(server_info)
    return servers


def kill_qosc_servers() -> int:
    """Kill every registered server process and clear its PID file."""
    killed = 0
    for pid_file in get_servers_dir().glob("server_*.json"):
        try:
            with pid_file.open() as f:
                server_info = json.load(f)
            pid = server_info["pid"]
            try:
                proc = psutil.Process(pid)
                logger.info(
                    "Killing server PID {} started at {}", pid, server_info["timestamp"]
                )
                proc.kill()
                killed += 1
            except psutil.NoSuchProcess:
                logger.debug("Server PID {} no longer exists", pid)
            pid_file.unlink()
        except Exception as e:
            logger.error("Error processing {}: {}", pid_file, e)
            continue
    return killed

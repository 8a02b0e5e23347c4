# -*- coding: utf-8 -*-

DEFAULT_HOST_ADDR = "127.0.0.1"
DEFAULT_PORT = 9000
DEFAULT_BACKEND = "gk"
DEFAULT_TIMEOUT = 5  # seconds, client side wait for a reply
DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err comms

DEFAULT_MAX_QUBITS = 1024
DEFAULT_MAX_SESSIONS = 1000  # concurrent sessions across all clients
DEFAULT_SESSION_TIMEOUT = 300.0  # seconds idle before a session is reclaimed
DEFAULT_SWEEP_INTERVAL = 30.0  # seconds between idle sweeps
DEFAULT_TOMBSTONE_TTL = 600.0  # seconds an expired identity answers SessionExpired
DEFAULT_MAX_PENDING = 1000  # queued units across all clients
DEFAULT_INBOX_SIZE = 1000  # datagrams waiting for the receive loop
DEFAULT_DROP_POLICY = "newest"

"""Logical error rate of Steane-encoded qubits under physical bit flips.

Runs its own server in-process for each physical error rate.
"""

import asyncio

from loguru import logger

from qosc.backend import get_backend
from qosc.server import OscClient, OscServer
from qosc.util import start_client_log

N_LOGICAL = 16
ROUNDS = 50


async def logical_error_rate(error_rate: float) -> float:
    backend = get_backend("steane", seed=1, error_rate=error_rate)
    async with OscServer(backend, port=0) as server:
        host, port = server.local_address
        async with OscClient(host, port, namespace="steane") as client:
            errors = 0
            for _ in range(ROUNDS):
                # fresh |0> blocks each round, a flip is only counted once
                await client.init(N_LOGICAL)
                errors += sum(OscClient.bits(await client.measure()))
    return errors / (N_LOGICAL * ROUNDS)


async def main():
    start_client_log(log_to_file=False, log_to_stdout=True, log_level="INFO")
    for p in (0.0, 0.01, 0.05, 0.1):
        rate = await logical_error_rate(p)
        logger.info("physical p={:.3f} -> logical error rate {:.4f}", p, rate)


if __name__ == "__main__":
    asyncio.run(main())

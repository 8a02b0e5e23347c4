"""Prepare and measure Bell pairs on a running qosc server.

Start a server first:
    qosc server -c gk
"""

import asyncio
from collections import Counter

from loguru import logger

from qosc.server import OscClient
from qosc.util import start_client_log

SHOTS = 100


async def main():
    start_client_log(log_to_stdout=True, log_level="INFO")
    counts = Counter()
    async with OscClient("127.0.0.1", 9000, namespace="gk") as client:
        for _ in range(SHOTS):
            await client.init(2)
            await client.gate("H", [0])
            await client.gate("CX", [0, 1])
            reply = await client.measure([0, 1])
            counts["".join(str(b) for b in OscClient.bits(reply))] += 1
        await client.reset()
    logger.info("Bell pair outcomes over {} shots: {}", SHOTS, dict(counts))


if __name__ == "__main__":
    asyncio.run(main())

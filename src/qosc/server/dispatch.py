# -*- coding: utf-8 -*-
"""
Work dispatch: per-client FIFO lanes over a bounded pending pool.

Every accepted message becomes a WorkUnit appended to its client's lane. A lane
has at most one worker task, which runs the lane's units one after another in
arrival order. Lanes of different clients run concurrently, so a slow backend
call for one client never holds up another. A lane and its task go away as soon
as the lane is empty.

The number of pending (accepted, not yet started) units across all lanes is
bounded by `max_pending`. When the pool is full, `drop_policy` decides which
unit is lost:

- "newest": the incoming unit is dropped
- "oldest": the oldest pending unit of any client is dropped

UDP already allows loss, so a dropped unit is logged and counted, never replied.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from loguru import logger

from qosc.types import ClientId, Message
from qosc.util import DEFAULT_DROP_POLICY, DEFAULT_MAX_PENDING

from .router import Route

DROP_POLICIES = ("newest", "oldest")


@dataclass
class WorkUnit:
    seq: int
    client: ClientId
    route: Route
    message: Message
    received_at: float = field(default_factory=time.monotonic)


class _Lane:
    def __init__(self, client: ClientId):
        self.client = client
        self.pending: deque[WorkUnit] = deque()
        self.task: Optional[asyncio.Task] = None


class Dispatcher:
    """Schedules WorkUnits onto per-client lanes.

    Parameters
    ----------
    handler : Callable[[WorkUnit], Awaitable[None]]
        Coroutine run for every unit; expected to reply and not raise.
    max_pending : int
        Bound on queued units across all clients.
    drop_policy : str
        "newest" or "oldest", see module docs.
    """

    def __init__(
        self,
        handler: Callable[[WorkUnit], Awaitable[None]],
        max_pending: int = DEFAULT_MAX_PENDING,
        drop_policy: str = DEFAULT_DROP_POLICY,
    ):
        if drop_policy not in DROP_POLICIES:
            raise ValueError(
                f"Invalid drop_policy: {drop_policy}, expected one of {DROP_POLICIES}"
            )
        if max_pending < 1:
            raise ValueError(f"max_pending must be positive, got {max_pending}")
        self._handler = handler
        self.max_pending = max_pending
        self.drop_policy = drop_policy
        self._lanes: dict[ClientId, _Lane] = {}
        self._pending = 0
        self._seq = itertools.count()
        self.stats = {"accepted": 0, "dropped": 0, "completed": 0}

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def active_lanes(self) -> int:
        return len(self._lanes)

    def submit(self, client: ClientId, route: Route, message: Message) -> bool:
        """Queue a unit for `client`. Returns False if the unit itself was dropped."""
        if self._pending >= self.max_pending:
            if self.drop_policy == "newest":
                self.stats["dropped"] += 1
                logger.warning(
                    "Work queue full ({}), dropping newest: {} from {}",
                    self._pending,
                    message.address,
                    client,
                )
                return False
            self._drop_oldest()

        unit = WorkUnit(
            seq=next(self._seq), client=client, route=route, message=message
        )
        lane = self._lanes.get(client)
        if lane is None:
            lane = _Lane(client)
            self._lanes[client] = lane
        lane.pending.append(unit)
        self._pending += 1
        self.stats["accepted"] += 1
        if lane.task is None:
            lane.task = asyncio.create_task(
                self._run_lane(lane), name=f"lane-{client[0]}:{client[1]}"
            )
        return True

    async def drain(self) -> None:
        """Wait until every lane has finished its queued units."""
        while self._lanes:
            tasks = [lane.task for lane in self._lanes.values() if lane.task]
            if not tasks:
                break
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel all lanes. Pending units are discarded."""
        tasks = [lane.task for lane in self._lanes.values() if lane.task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._lanes.clear()
        self._pending = 0

    # ------------------------------------------------------------------------

    def _drop_oldest(self) -> None:
        lanes = [lane for lane in self._lanes.values() if lane.pending]
        oldest_lane = min(lanes, key=lambda lane: lane.pending[0].seq)
        unit = oldest_lane.pending.popleft()
        self._pending -= 1
        self.stats["dropped"] += 1
        logger.warning(
            "Work queue full, dropping oldest: {} from {}",
            unit.message.address,
            unit.client,
        )

    async def _run_lane(self, lane: _Lane) -> None:
        try:
            while lane.pending:
                unit = lane.pending.popleft()
                self._pending -= 1
                try:
                    await self._handler(unit)
                except Exception:
                    logger.exception("Uncaught error handling {}.", unit.message)
                self.stats["completed"] += 1
        finally:
            lane.task = None
            if not lane.pending and self._lanes.get(lane.client) is lane:
                del self._lanes[lane.client]

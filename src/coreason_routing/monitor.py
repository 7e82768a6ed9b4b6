# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import asyncio
from typing import List, Optional

from coreason_routing.engine import RoutingEngine
from coreason_routing.models import RouterHealth
from coreason_routing.utils.logger import logger


class HealthMonitor:
    """
    Periodic, read-only sweep over the engine's health state.

    Each sweep computes a RouterHealth summary and pushes it to every
    subscriber queue, so dashboards receive updates instead of polling.
    """

    def __init__(self, engine: RoutingEngine, interval_seconds: Optional[float] = None, queue_size: int = 16) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds or engine.settings.monitor_interval_seconds
        self.queue_size = queue_size
        self.latest: Optional[RouterHealth] = None
        self._subscribers: List["asyncio.Queue[RouterHealth]"] = []
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self) -> "asyncio.Queue[RouterHealth]":
        queue: "asyncio.Queue[RouterHealth]" = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.append(queue)
        if self.latest is not None:
            queue.put_nowait(self.latest)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[RouterHealth]") -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def sweep_once(self) -> RouterHealth:
        summary = self.engine.get_router_health()
        self.latest = summary
        for queue in list(self._subscribers):
            if queue.full():
                # Slow consumer: drop its oldest summary, keep the newest
                queue.get_nowait()
            queue.put_nowait(summary)
        logger.debug(
            f"Health sweep: {summary.overall_status} "
            f"({summary.healthy_models}/{summary.active_models} healthy, {summary.open_circuits} open circuits)"
        )
        return summary

    async def _run(self) -> None:
        while True:
            try:
                self.sweep_once()
            except Exception as e:
                logger.error(f"Health sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"HealthMonitor started (interval {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("HealthMonitor stopped")

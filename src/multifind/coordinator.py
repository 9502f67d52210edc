#  Copyright (c) 2025 Tom Villani, Ph.D.
"""Readiness and injection coordination for one tab, run by the Query Surface.

The Document Engine is transient: it is absent until injected and vanishes
whenever the page navigates or reloads. Before every request the Query
Surface runs an explicit state machine:

    unknown -> probing -> ready
                       -> injecting -> (settle delay) -> probing -> ...
                       -> failed   (retry budget exhausted, or restricted page)

Injection is idempotent from the engine's side, and an asyncio lock keeps two
concurrent callers for the same tab from injecting twice.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

from multifind.constants import is_restricted_url
from multifind.exceptions import (
    InjectionError,
    InjectionExhaustedError,
    NoReceiverError,
    RestrictedTargetError,
)
from multifind.options.surface import InjectionOptions
from multifind.protocol import PING_MESSAGE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TabInfo:
    """The tab a Query Surface was opened against."""

    tab_id: int
    url: str
    title: str = ""

    @property
    def restricted(self) -> bool:
        return is_restricted_url(self.url)


class TabTransport(Protocol):
    """Operations the coordinator needs from the host browser."""

    async def send_message(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]: ...

    async def insert_css(self, tab_id: int, files: Sequence[str]) -> None: ...

    async def execute_script(self, tab_id: int, files: Sequence[str]) -> None: ...


class InjectionStatus(Enum):
    """States of the per-tab readiness machine."""

    UNKNOWN = "unknown"
    PROBING = "probing"
    INJECTING = "injecting"
    READY = "ready"
    FAILED = "failed"


@dataclass
class InjectionState:
    status: InjectionStatus = InjectionStatus.UNKNOWN
    retry_count: int = 0
    last_error: str | None = None


class InjectionCoordinator:
    """Ensures a live Document Engine in one tab and routes requests to it.

    Parameters
    ----------
    transport : TabTransport
        Host browser messaging and injection primitives
    tab : TabInfo
        Target tab
    options : InjectionOptions, optional
        Settle delay, retry budget and injected file names

    """

    def __init__(self, transport: TabTransport, tab: TabInfo, options: InjectionOptions | None = None) -> None:
        """Start in the ``unknown`` state."""
        self.transport = transport
        self.tab = tab
        self.options = options or InjectionOptions()
        self.state = InjectionState()
        self.injections = 0
        self._lock = asyncio.Lock()

    @property
    def status(self) -> InjectionStatus:
        return self.state.status

    def reset(self) -> None:
        """Forget readiness, e.g. after the engine stopped answering."""
        self.state = InjectionState()

    async def ping(self) -> bool:
        """Send a liveness ping; False means no engine is listening."""
        try:
            response = await self.transport.send_message(self.tab.tab_id, dict(PING_MESSAGE))
        except NoReceiverError:
            return False
        return isinstance(response, dict) and response.get("status") == "ok"

    async def ensure_ready(self) -> None:
        """Drive the state machine until the tab's engine answers pings.

        Raises
        ------
        RestrictedTargetError
            If the tab's URL may not be injected; never retried
        InjectionExhaustedError
            If the engine is still silent after every injection attempt

        """
        if self.tab.restricted:
            self.state = InjectionState(status=InjectionStatus.FAILED, last_error="restricted")
            raise RestrictedTargetError(self.tab.url)

        async with self._lock:
            if self.state.status is InjectionStatus.READY:
                return
            if self.state.status is InjectionStatus.FAILED:
                raise InjectionExhaustedError(self.tab.url, self.state.retry_count)

            self.state.status = InjectionStatus.PROBING
            if await self.ping():
                self.state.status = InjectionStatus.READY
                return

            while self.state.retry_count < self.options.max_injection_attempts:
                self.state.retry_count += 1
                self.state.status = InjectionStatus.INJECTING
                logger.info(
                    "Engine not loaded in tab %d, injecting (attempt %d/%d)",
                    self.tab.tab_id,
                    self.state.retry_count,
                    self.options.max_injection_attempts,
                )
                try:
                    await self._inject()
                except RestrictedTargetError:
                    self.state.status = InjectionStatus.FAILED
                    self.state.last_error = "restricted"
                    raise
                except InjectionError as e:
                    logger.warning("Error injecting engine into tab %d: %s", self.tab.tab_id, e)
                    self.state.last_error = str(e)

                await asyncio.sleep(self.options.settle_delay_seconds)

                self.state.status = InjectionStatus.PROBING
                if await self.ping():
                    self.state.status = InjectionStatus.READY
                    return

            self.state.status = InjectionStatus.FAILED
            logger.error("Engine in tab %d unreachable after %d attempts", self.tab.tab_id, self.state.retry_count)
            raise InjectionExhaustedError(self.tab.url, self.state.retry_count)

    async def request(self, message: dict[str, Any]) -> dict[str, Any]:
        """Send ``message`` to the engine, re-establishing it once if it has gone away.

        Raises
        ------
        RestrictedTargetError
            If the tab may not be messaged
        InjectionExhaustedError
            If the engine cannot be (re-)established

        """
        await self.ensure_ready()
        try:
            return await self.transport.send_message(self.tab.tab_id, message)
        except NoReceiverError:
            logger.info("Engine in tab %d went away; re-establishing", self.tab.tab_id)

        self.reset()
        await self.ensure_ready()
        try:
            return await self.transport.send_message(self.tab.tab_id, message)
        except NoReceiverError as e:
            self.state.status = InjectionStatus.FAILED
            self.state.last_error = str(e)
            raise InjectionExhaustedError(self.tab.url, self.state.retry_count, original_error=e) from e

    async def _inject(self) -> None:
        self.injections += 1
        await self.transport.insert_css(self.tab.tab_id, self.options.stylesheet_files)
        await self.transport.execute_script(self.tab.tab_id, self.options.script_files)

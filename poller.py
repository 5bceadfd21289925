# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Periodic status refresh for negotiations a view is watching.

Polling is cooperative: the loop checks its CancellationToken every time it
resumes from a suspension point, so nothing is applied after the view that
started it has gone away, even if a read resolves later.
"""

import asyncio
import itertools
import logging
from typing import Awaitable, Callable

from events import EventAggregator
from protocol import POLL_INTERVAL, LedgerError
from status import NegotiationStatus

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class StatusBoard:
    """Latest known status per negotiation, applied in completion order.

    Two refreshes of the same id may overlap; whichever finishes last wins,
    regardless of which one started first.
    """

    def __init__(self):
        self._seq = itertools.count(1)
        self.statuses: dict[int, NegotiationStatus] = {}
        self.completed_at: dict[int, int] = {}

    def apply(self, status: NegotiationStatus) -> NegotiationStatus | None:
        """Record status; return the one it replaced."""
        previous = self.statuses.get(status.id)
        self.statuses[status.id] = status
        self.completed_at[status.id] = next(self._seq)
        return previous

    def get(self, request_id: int) -> NegotiationStatus | None:
        return self.statuses.get(request_id)

    async def refresh(self, aggregator: EventAggregator, request_id: int,
                      token: CancellationToken | None = None) -> NegotiationStatus | None:
        status = await aggregator.status(request_id)
        if token is not None and token.cancelled:
            return None
        self.apply(status)
        return status


def newly_accepted(previous: NegotiationStatus | None, current: NegotiationStatus) -> bool:
    return current.accepted and not (previous is not None and previous.accepted)


async def poll_status(
    aggregator: EventAggregator,
    request_ids: list[int],
    board: StatusBoard,
    token: CancellationToken,
    interval: float = POLL_INTERVAL,
    initial_delay: float = 0,
    sleep: Callable[[float], Awaitable] = asyncio.sleep,
    on_update: Callable[[NegotiationStatus | None, NegotiationStatus], None] | None = None,
    on_error: Callable[[int, LedgerError], None] | None = None,
    max_rounds: int | None = None,
) -> None:
    """Refresh each id every `interval` seconds until the token is cancelled.

    Classified ledger errors are reported through on_error (callers check
    `err.retryable` to offer a manual retry) and polling continues. Anything
    else propagates.
    """
    if initial_delay:
        await sleep(initial_delay)
    rounds = 0
    while not token.cancelled:
        for rid in request_ids:
            try:
                status = await aggregator.status(rid)
            except LedgerError as e:
                if token.cancelled:
                    return
                logger.info("poll of %s failed (retryable=%s): %s", rid, e.retryable, e)
                if on_error is not None:
                    on_error(rid, e)
                continue
            if token.cancelled:
                return
            previous = board.apply(status)
            if on_update is not None:
                on_update(previous, status)
        rounds += 1
        if max_rounds is not None and rounds >= max_rounds:
            return
        await sleep(interval)

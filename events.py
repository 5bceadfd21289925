# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Event aggregation for skillshare negotiations.

Pulls every stream on the shared GlobalRequests resource, indexes each by
negotiation id, and hands per-id slices to the status resolver. A snapshot
is all-or-nothing: if any stream fails to load, nothing is returned.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from cache import Cache
from client import LedgerReader, normalize_address
from protocol import (
    DEFAULT_ID_FIELD, ID_FIELDS, NEGOTIATION_TTL, EventKind,
    InconsistentAggregationError, ModuleIds,
)
from scheduler import RequestScheduler
from status import NegotiationEvents, NegotiationStatus, resolve_status

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "events:global"


def event_request_id(kind: EventKind, data: dict) -> int:
    return int(data[ID_FIELDS.get(kind, DEFAULT_ID_FIELD)])


def _party(data: dict, role: str) -> str | None:
    try:
        return normalize_address(data[role])
    except (KeyError, TypeError, AttributeError, ValueError):
        logger.debug("request %s has no usable %s address", data.get("id"), role)
        return None


@dataclass
class LedgerSnapshot:
    """Every stream indexed by negotiation id, first occurrence kept."""

    streams: dict = field(default_factory=dict)  # EventKind -> {id: event data}

    @classmethod
    def from_streams(cls, raw: dict) -> "LedgerSnapshot":
        streams = {}
        for kind, events in raw.items():
            index = {}
            for e in sorted(events, key=lambda e: e["sequence_number"]):
                rid = event_request_id(kind, e["data"])
                index.setdefault(rid, e["data"])
            streams[kind] = index
        return cls(streams=streams)

    def request_ids(self) -> list[int]:
        return sorted(self.streams.get(EventKind.REQUEST, {}))

    def slice(self, request_id: int) -> NegotiationEvents:
        first = {}
        for kind, index in self.streams.items():
            if request_id in index:
                first[kind] = index[request_id]
        return NegotiationEvents(request_id=request_id, first=first)


class EventAggregator:
    """Shared, cached view of the negotiation event streams."""

    def __init__(self, reader: LedgerReader, ids: ModuleIds,
                 cache: Cache | None = None, scheduler: RequestScheduler | None = None):
        self.reader = reader
        self.ids = ids
        self.cache = cache or Cache()
        self.scheduler = scheduler

    async def _read_stream(self, kind: EventKind) -> list[dict]:
        args = (self.ids.address, self.ids.global_requests, kind.value)
        if self.scheduler is not None:
            return await self.scheduler.run(self.reader.read_events, *args)
        return await self.reader.read_events(*args)

    async def _fetch_snapshot(self) -> LedgerSnapshot:
        kinds = list(EventKind)
        # Join on every stream before looking at any result
        results = await asyncio.gather(
            *(self._read_stream(k) for k in kinds), return_exceptions=True,
        )
        for kind, result in zip(kinds, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("aggregation failed on %s: %s", kind.value, result)
                raise InconsistentAggregationError(kind.value, result) from result
        return LedgerSnapshot.from_streams(dict(zip(kinds, results)))

    async def snapshot(self) -> LedgerSnapshot:
        return await self.cache.get_or_compute(SNAPSHOT_KEY, NEGOTIATION_TTL, self._fetch_snapshot)

    async def negotiation_events(self, request_id: int) -> NegotiationEvents:
        # No per-id cache: every slice comes from the current snapshot
        return (await self.snapshot()).slice(request_id)

    async def status(self, request_id: int) -> NegotiationStatus:
        request_id = int(request_id)
        return resolve_status(request_id, await self.negotiation_events(request_id))

    async def requests_for(self, learner: str | None = None,
                           teacher: str | None = None) -> list[NegotiationStatus]:
        """Resolved statuses of every negotiation involving the given party."""
        snap = await self.snapshot()
        learner = normalize_address(learner) if learner else None
        teacher = normalize_address(teacher) if teacher else None
        requests = snap.streams.get(EventKind.REQUEST, {})
        out = []
        for rid in snap.request_ids():
            data = requests[rid]
            if learner and _party(data, "learner") != learner:
                continue
            if teacher and _party(data, "teacher") != teacher:
                continue
            out.append(resolve_status(rid, snap.slice(rid)))
        return out

    def invalidate(self) -> None:
        """Forget cached streams after a write changed ledger truth."""
        self.cache.invalidate(SNAPSHOT_KEY)

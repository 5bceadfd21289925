# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""HTTP API for the skillshare client (FastAPI).

Read-only endpoints over the derived ledger view: negotiation status,
learner/teacher request lists, the teacher directory, profiles and
account state. Writes go through a wallet, never through this server.

Error mapping:
- NotFoundError -> 404
- retryable (network, 429, 5xx) -> 503 with {"retryable": true}
- any other ledger failure -> 502
"""

import sys
import os
import time
# Ensure parent directory is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cache import Cache
from client import HTTPLedgerReader, LedgerReader, normalize_address
from directory import Directory
from events import EventAggregator
from protocol import (
    LESSON_PRICE, MODULE_ADDR, NODE_URL, LedgerError, ModuleIds,
    NotFoundError, RateLimitedError,
)
from scheduler import RequestScheduler
from status import can_report_non_response, hours_since_payment, progress_label

logger = logging.getLogger(__name__)


# --- Response models ---

class NegotiationResponse(BaseModel):
    id: int
    learner: str
    teacher: str
    skill: str
    state: str
    label: str
    accepted: bool
    rejected: bool
    payment_deposited: bool
    acknowledged: bool
    communication_started: bool
    learner_reported_non_response: bool
    completed: bool
    refunded: bool
    conflicting: bool
    payment_time: Optional[int] = None
    acknowledgment_time: Optional[int] = None
    communication_time: Optional[int] = None
    hours_since_payment: int = 0
    can_report_non_response: bool = False

class ParticipantResponse(BaseModel):
    address: str
    name: str
    skills: list[str] = []

class AccountResponse(BaseModel):
    address: str
    coin_registered: bool
    balance: Optional[int] = None
    can_pay_lesson: bool = False


def create_app(
    reader: LedgerReader | None = None,
    ids: ModuleIds | None = None,
    cache: Cache | None = None,
    scheduler: RequestScheduler | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create FastAPI app with injected dependencies.

    One cache and one scheduler are shared by every request this app serves.
    """

    app = FastAPI(title="Skillshare", version="1.0")

    _ids = ids or ModuleIds.from_address(MODULE_ADDR)
    _reader = reader or HTTPLedgerReader(NODE_URL)
    _cache = cache or Cache()
    _scheduler = scheduler or RequestScheduler()
    _aggregator = EventAggregator(_reader, _ids, cache=_cache, scheduler=_scheduler)
    _directory = Directory(_reader, _ids, cache=_cache, scheduler=_scheduler)

    # Expose for testing
    app.state.cache = _cache
    app.state.scheduler = _scheduler
    app.state.aggregator = _aggregator
    app.state.directory = _directory

    @app.exception_handler(LedgerError)
    async def ledger_error(request: Request, exc: LedgerError):
        if isinstance(exc, NotFoundError):
            return JSONResponse(status_code=404, content={"detail": str(exc), "retryable": False})
        if exc.retryable:
            headers = {}
            if isinstance(exc, RateLimitedError) and exc.retry_after:
                headers["Retry-After"] = str(int(exc.retry_after))
            return JSONResponse(status_code=503, headers=headers,
                                content={"detail": str(exc), "retryable": True})
        logger.error("ledger read failed on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc), "retryable": False})

    def _address(addr: str) -> str:
        try:
            return normalize_address(addr)
        except ValueError as e:
            raise HTTPException(400, str(e))

    def _negotiation(status) -> dict:
        now = clock()
        return {
            **status.to_dict(),
            "label": progress_label(status),
            "hours_since_payment": hours_since_payment(status, now),
            "can_report_non_response": can_report_non_response(status, now),
        }

    # --- Negotiations ---

    @app.get("/negotiations/{request_id}", response_model=NegotiationResponse)
    async def get_negotiation(request_id: int):
        return _negotiation(await _aggregator.status(request_id))

    @app.get("/learners/{address}/requests")
    async def learner_requests(address: str):
        statuses = await _aggregator.requests_for(learner=_address(address))
        return {"requests": [_negotiation(s) for s in statuses]}

    @app.get("/teachers/{address}/requests")
    async def teacher_requests(address: str):
        statuses = await _aggregator.requests_for(teacher=_address(address))
        return {"requests": [_negotiation(s) for s in statuses]}

    # --- Directory ---

    @app.get("/teachers")
    async def list_teachers(exclude: str = ""):
        teachers = await _directory.teachers(exclude=_address(exclude) if exclude else None)
        return {"teachers": [t.to_dict() for t in teachers]}

    @app.get("/participants/{address}", response_model=ParticipantResponse)
    async def get_participant(address: str):
        p = await _directory.profile(_address(address))
        if p is None:
            raise HTTPException(404, "Participant not found")
        return p.to_dict()

    @app.get("/accounts/{address}", response_model=AccountResponse)
    async def get_account(address: str):
        addr = _address(address)
        registered = await _directory.coin_registered(addr)
        balance = await _directory.balance(addr) if registered else None
        return {
            "address": addr,
            "coin_registered": registered,
            "balance": balance,
            "can_pay_lesson": balance is not None and balance >= LESSON_PRICE,
        }

    # --- Cache management ---

    @app.delete("/cache/{address}")
    async def clear_address_cache(address: str):
        _directory.invalidate(_address(address))
        return {"cleared": _address(address)}

    @app.delete("/cache")
    async def clear_cache():
        _cache.invalidate_all()
        return {"cleared": "all"}

    return app

# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Shared constants and interfaces for the skillshare client.

All modules import from here to avoid circular dependencies.
"""

import os
from dataclasses import dataclass
from enum import Enum

# --- Configuration ---

MODULE_ADDR = os.environ.get("SKILLSHARE_MODULE_ADDR", "")
NODE_URL = os.environ.get("SKILLSHARE_NODE_URL", "https://fullnode.devnet.aptoslabs.com/v1")
PORT = int(os.environ.get("SKILLSHARE_PORT", "8000"))
LOG_LEVEL = os.environ.get("SKILLSHARE_LOG_LEVEL", "INFO")

# --- Protocol Constants ---

MODULE_NAME = "skillshare"
COIN_STORE_TYPE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"

LESSON_PRICE = 100_000_000  # 1 APT in octas
RESPONSE_WINDOW = 24 * 60 * 60  # seconds the teacher has to make contact after payment

EVENT_PAGE_SIZE = 100

# Cache TTLs (seconds). Identity facts change rarely, balances and request
# state should reflect recent writes sooner.
USER_EXISTS_TTL = 60
PROFILE_TTL = 60
REGISTRATIONS_TTL = 30
COIN_REGISTRATION_TTL = 30
NEGOTIATION_TTL = 15
BALANCE_TTL = 10

# Minimum spacing between remote reads (rate-limited endpoint)
SCHEDULER_DELAY = 0.3

# Polling
POLL_INTERVAL = 90
POLL_INITIAL_DELAY = 15


# --- Event streams ---

GLOBAL_REQUESTS = "GlobalRequests"
REGISTRATION_EVENTS = "RegistrationEvents"
REGISTRATION_FIELD = "handle"


class EventKind(Enum):
    REQUEST = "request_events"
    ACCEPT = "accept_events"
    REJECT = "rejected_events"
    PAYMENT = "payment_events"
    ACKNOWLEDGMENT = "acknowledgment_events"
    COMMUNICATION = "communication_events"
    # Assumed field name: no deployed client reads this stream yet
    NON_RESPONSE = "non_response_events"
    RELEASE = "release_events"
    REFUND = "refund_events"


# Request/accept/reject payloads carry "id", the payment-stage streams "request_id"
ID_FIELDS = {
    EventKind.REQUEST: "id",
    EventKind.ACCEPT: "id",
    EventKind.REJECT: "id",
}
DEFAULT_ID_FIELD = "request_id"


# --- Identifiers ---

@dataclass(frozen=True)
class ModuleIds:
    """Every `{address}::skillshare::{symbol}` string, assembled once."""

    address: str
    # resource types
    user: str
    global_requests: str
    registration_events: str
    # entry functions
    register: str
    add_skill: str
    request_teach: str
    accept_request: str
    reject_request: str
    deposit_payment: str
    acknowledge_payment: str
    teacher_request_release: str
    learner_confirm_completion: str
    mark_communication_started: str
    report_non_response: str
    claim_refund: str
    register_for_coin: str
    # view functions
    user_exists: str
    get_contact_info: str

    @classmethod
    def from_address(cls, address: str) -> "ModuleIds":
        if not address:
            raise ValueError("module address required: set SKILLSHARE_MODULE_ADDR or pass an address")

        def sym(name: str) -> str:
            return f"{address}::{MODULE_NAME}::{name}"

        return cls(
            address=address,
            user=sym("User"),
            global_requests=sym(GLOBAL_REQUESTS),
            registration_events=sym(REGISTRATION_EVENTS),
            register=sym("register_user_with_contact"),
            add_skill=sym("add_skill"),
            request_teach=sym("request_teach"),
            accept_request=sym("accept_request"),
            reject_request=sym("reject_request"),
            deposit_payment=sym("deposit_payment"),
            acknowledge_payment=sym("acknowledge_payment"),
            teacher_request_release=sym("teacher_request_release"),
            learner_confirm_completion=sym("learner_confirm_completion"),
            mark_communication_started=sym("learner_mark_communication_started"),
            report_non_response=sym("learner_report_non_response"),
            claim_refund=sym("claim_refund"),
            register_for_coin=sym("register_for_aptos_coin"),
            user_exists=sym("user_exists"),
            get_contact_info=sym("get_contact_info"),
        )


# --- State Machine ---

class NegotiationState(Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAYMENT_DEPOSITED = "payment_deposited"
    ACKNOWLEDGED = "acknowledged"
    COMMUNICATION_STARTED = "communication_started"
    COMPLETED = "completed"
    NON_RESPONSE_REPORTED = "non_response_reported"
    REFUNDED = "refunded"


# Valid state transitions: current_state -> set of valid next states
STATE_TRANSITIONS = {
    NegotiationState.REQUESTED: {NegotiationState.ACCEPTED, NegotiationState.REJECTED},
    NegotiationState.ACCEPTED: {NegotiationState.PAYMENT_DEPOSITED},
    NegotiationState.PAYMENT_DEPOSITED: {NegotiationState.ACKNOWLEDGED},
    NegotiationState.ACKNOWLEDGED: {
        NegotiationState.COMMUNICATION_STARTED,
        NegotiationState.NON_RESPONSE_REPORTED,
    },
    NegotiationState.COMMUNICATION_STARTED: {NegotiationState.COMPLETED},
    NegotiationState.NON_RESPONSE_REPORTED: {NegotiationState.REFUNDED},
    NegotiationState.REJECTED: set(),
    NegotiationState.COMPLETED: set(),
    NegotiationState.REFUNDED: set(),
}

TERMINAL_STATES = {s for s, nxt in STATE_TRANSITIONS.items() if not nxt}


# --- Errors ---

class LedgerError(Exception):
    """A classified failure reading the ledger."""

    retryable = False


class NotFoundError(LedgerError):
    """Resource or event handle does not exist. Expected, never user-facing."""


class NegotiationNotFoundError(NotFoundError):
    def __init__(self, request_id: int):
        super().__init__(f"negotiation {request_id} not found")
        self.request_id = request_id


class TransientError(LedgerError):
    """Network failure or server-side hiccup. Worth retrying."""

    retryable = True


class RateLimitedError(TransientError):
    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UnexpectedLedgerError(LedgerError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InconsistentAggregationError(LedgerError):
    """One stream of a multi-stream read failed; the whole read is discarded."""

    def __init__(self, stream: str, cause: BaseException):
        super().__init__(f"failed to read stream {stream}: {cause}")
        self.stream = stream
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return is_retryable(self.cause)


class SignerError(Exception):
    pass


class UserRejectedError(SignerError):
    pass


class SubmissionError(SignerError):
    pass


class SchedulerClosedError(RuntimeError):
    pass


def is_retryable(exc: BaseException) -> bool:
    """True if exc is a transient read failure (stale data may stand in)."""
    return isinstance(exc, LedgerError) and bool(exc.retryable)

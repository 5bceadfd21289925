# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Lifecycle status resolution for skillshare negotiations.

The ledger stores no status. A negotiation's state is derived from which of
the nine event streams contain an event for its id. Everything here is pure:
same events in, same status out, no I/O.

    requested -> accepted -> payment_deposited -> acknowledged
        -> communication_started -> completed
        -> non_response_reported -> refunded   (no contact, 24h after payment)
    requested -> rejected                      (terminal, overrides the rest)
"""

import logging
from dataclasses import dataclass, field, asdict

from client import decode_text
from protocol import (
    EventKind, NegotiationState, NegotiationNotFoundError, RESPONSE_WINDOW,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NegotiationEvents:
    """First event of each kind observed for one negotiation id."""

    request_id: int
    first: dict = field(default_factory=dict)  # EventKind -> event data

    def has(self, kind: EventKind) -> bool:
        return kind in self.first

    def get(self, kind: EventKind) -> dict | None:
        return self.first.get(kind)


@dataclass(frozen=True)
class NegotiationStatus:
    id: int
    learner: str
    teacher: str
    skill: str
    state: NegotiationState
    accepted: bool = False
    rejected: bool = False
    payment_deposited: bool = False
    acknowledged: bool = False
    communication_started: bool = False
    learner_reported_non_response: bool = False
    completed: bool = False
    refunded: bool = False
    payment_time: int | None = None
    acknowledgment_time: int | None = None
    communication_time: int | None = None

    @property
    def conflicting(self) -> bool:
        """Both contact and non-response were recorded; the ledger should prevent this."""
        return self.communication_started and self.learner_reported_non_response

    def to_dict(self) -> dict:
        d = asdict(self)
        d["state"] = self.state.value
        d["conflicting"] = self.conflicting
        return d


def _timestamp(data: dict | None) -> int | None:
    if not data or data.get("timestamp") is None:
        return None
    return int(data["timestamp"])


def _reported_after_window(events: NegotiationEvents) -> bool:
    # Untimestamped reports are taken at face value
    reported_at = _timestamp(events.get(EventKind.NON_RESPONSE))
    paid_at = _timestamp(events.get(EventKind.PAYMENT))
    if reported_at is None or paid_at is None:
        return True
    return reported_at - paid_at >= RESPONSE_WINDOW


def resolve_status(request_id: int, events: NegotiationEvents) -> NegotiationStatus:
    """Derive the canonical status of one negotiation from its events.

    Each flag is only set when its prerequisite flag is set, so a stray
    later-stage event never skips a state. A rejection overrides everything.

    Raises NegotiationNotFoundError if no request event exists for the id.
    """
    request = events.get(EventKind.REQUEST)
    if request is None:
        raise NegotiationNotFoundError(request_id)

    base = {
        "id": request_id,
        "learner": request.get("learner", ""),
        "teacher": request.get("teacher", ""),
        "skill": decode_text(request.get("skill", "")),
    }

    if events.has(EventKind.REJECT):
        return NegotiationStatus(**base, state=NegotiationState.REJECTED, rejected=True)

    accepted = events.has(EventKind.ACCEPT)
    paid = accepted and events.has(EventKind.PAYMENT)
    acknowledged = paid and events.has(EventKind.ACKNOWLEDGMENT)
    contacted = acknowledged and events.has(EventKind.COMMUNICATION)
    reported = acknowledged and events.has(EventKind.NON_RESPONSE) and _reported_after_window(events)
    completed = contacted and events.has(EventKind.RELEASE)
    # The refund branch is closed once contact is recorded
    refunded = reported and not contacted and events.has(EventKind.REFUND)

    if contacted and reported:
        logger.warning("negotiation %s has both communication and non-response events", request_id)

    if completed:
        state = NegotiationState.COMPLETED
    elif refunded:
        state = NegotiationState.REFUNDED
    elif contacted:
        state = NegotiationState.COMMUNICATION_STARTED
    elif reported:
        state = NegotiationState.NON_RESPONSE_REPORTED
    elif acknowledged:
        state = NegotiationState.ACKNOWLEDGED
    elif paid:
        state = NegotiationState.PAYMENT_DEPOSITED
    elif accepted:
        state = NegotiationState.ACCEPTED
    else:
        state = NegotiationState.REQUESTED

    return NegotiationStatus(
        **base,
        state=state,
        accepted=accepted,
        payment_deposited=paid,
        acknowledged=acknowledged,
        communication_started=contacted,
        learner_reported_non_response=reported,
        completed=completed,
        refunded=refunded,
        payment_time=_timestamp(events.get(EventKind.PAYMENT)) if paid else None,
        acknowledgment_time=_timestamp(events.get(EventKind.ACKNOWLEDGMENT)) if acknowledged else None,
        communication_time=_timestamp(events.get(EventKind.COMMUNICATION)) if contacted else None,
    )


def hours_since_payment(status: NegotiationStatus, now: float) -> int:
    """Whole hours elapsed since payment; 0 if unpaid."""
    if status.payment_time is None:
        return 0
    return max(0, int((now - status.payment_time) // 3600))


def can_report_non_response(status: NegotiationStatus, now: float) -> bool:
    """Learner may report the teacher unresponsive: paid, acknowledged,
    no contact, not yet reported, and RESPONSE_WINDOW elapsed since payment."""
    if not (status.payment_deposited and status.acknowledged):
        return False
    if status.communication_started or status.learner_reported_non_response:
        return False
    if status.payment_time is None:
        return False
    return now - status.payment_time >= RESPONSE_WINDOW


def progress_label(status: NegotiationStatus) -> str:
    if status.rejected:
        return "Rejected"
    if status.completed:
        return "Completed"
    if status.refunded:
        return "Refunded"
    if status.learner_reported_non_response and not status.communication_started:
        return "Non-response reported"
    if status.communication_started:
        return "In progress"
    if status.acknowledged:
        return "Waiting for contact"
    if status.payment_deposited:
        return "Waiting for acknowledgment"
    if status.accepted:
        return "Payment required"
    return "Pending"

# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Transaction helpers for skillshare commands.

Every state-changing event on the ledger comes from one of these entry
function calls. The facade only shapes the payload and hands it to a
Signer (a wallet); it has no business logic. After a successful submit it
invalidates the cache keys the write is known to make stale.
"""

import logging
from abc import ABC, abstractmethod

from client import encode_text, normalize_address
from directory import REGISTRATIONS_KEY, Directory
from events import EventAggregator
from protocol import ModuleIds

logger = logging.getLogger(__name__)


class Signer(ABC):
    """Wallet capability. Raises UserRejectedError or SubmissionError."""

    address: str = ""

    @abstractmethod
    async def sign_and_submit(self, payload: dict) -> dict:
        ...


def build_payload(function_id: str, args: list | None = None) -> dict:
    return {
        "type": "entry_function_payload",
        "function": function_id,
        "type_arguments": [],
        "arguments": list(args or []),
    }


class TransactionFacade:
    def __init__(self, signer: Signer, ids: ModuleIds,
                 aggregator: EventAggregator | None = None,
                 directory: Directory | None = None):
        self.signer = signer
        self.ids = ids
        self.aggregator = aggregator
        self.directory = directory

    async def _submit(self, function_id: str, args: list,
                      negotiation: bool = True, profile: bool = False) -> dict:
        payload = build_payload(function_id, args)
        result = await self.signer.sign_and_submit(payload)
        logger.info("submitted %s %s -> %s", function_id.rsplit("::", 1)[-1], args,
                    result.get("hash", "") if isinstance(result, dict) else result)

        if negotiation and self.aggregator is not None:
            self.aggregator.invalidate()
        if self.directory is not None and self.signer.address:
            self.directory.invalidate(self.signer.address)
            if profile:
                self.directory.cache.invalidate(REGISTRATIONS_KEY)
        return result

    # --- Profile ---

    async def register(self, name: str, contact: str) -> dict:
        return await self._submit(self.ids.register, [encode_text(name), encode_text(contact)],
                                  negotiation=False, profile=True)

    async def add_skill(self, skill: str) -> dict:
        skill = skill.strip()
        if not skill:
            raise ValueError("skill cannot be empty")
        return await self._submit(self.ids.add_skill, [encode_text(skill)],
                                  negotiation=False, profile=True)

    async def register_for_coin(self) -> dict:
        return await self._submit(self.ids.register_for_coin, [], negotiation=False)

    # --- Negotiation ---

    async def request_teach(self, teacher: str, skill: str) -> dict:
        return await self._submit(self.ids.request_teach,
                                  [normalize_address(teacher), encode_text(skill)])

    async def accept(self, request_id: int) -> dict:
        return await self._submit(self.ids.accept_request, [str(request_id)])

    async def reject(self, request_id: int) -> dict:
        return await self._submit(self.ids.reject_request, [str(request_id)])

    async def deposit_payment(self, request_id: int) -> dict:
        return await self._submit(self.ids.deposit_payment, [str(request_id)])

    async def acknowledge_payment(self, request_id: int) -> dict:
        return await self._submit(self.ids.acknowledge_payment, [str(request_id)])

    async def request_release(self, request_id: int) -> dict:
        return await self._submit(self.ids.teacher_request_release, [str(request_id)])

    async def confirm_completion(self, request_id: int) -> dict:
        return await self._submit(self.ids.learner_confirm_completion, [str(request_id)])

    async def mark_communication_started(self, request_id: int) -> dict:
        return await self._submit(self.ids.mark_communication_started, [str(request_id)])

    async def report_non_response(self, request_id: int) -> dict:
        return await self._submit(self.ids.report_non_response, [str(request_id)])

    async def claim_refund(self, request_id: int) -> dict:
        return await self._submit(self.ids.claim_refund, [str(request_id)])

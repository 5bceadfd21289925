# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Participant directory and account state for skillshare.

The registration stream proves an address once claimed an identity; the
User resource at that address is the current profile. There is no index,
so the directory is rebuilt from both on demand and cached.
"""

import logging
from dataclasses import dataclass, field

from cache import Cache
from client import LedgerReader, decode_text, normalize_address
from protocol import (
    BALANCE_TTL, COIN_REGISTRATION_TTL, COIN_STORE_TYPE, PROFILE_TTL,
    REGISTRATION_FIELD, REGISTRATIONS_TTL, USER_EXISTS_TTL,
    LedgerError, ModuleIds, NotFoundError,
)
from scheduler import RequestScheduler

logger = logging.getLogger(__name__)

REGISTRATIONS_KEY = "registrations"
# Per-address keys, dropped together by Directory.invalidate()
ADDRESS_KEYS = ("exists", "profile", "balance", "coin")


class ProfileShapeError(ValueError):
    """User resource does not have the expected fields."""


@dataclass(frozen=True)
class Participant:
    address: str
    name: str
    skills: list = field(default_factory=list)
    contact: str = ""

    @property
    def default_skill(self) -> str | None:
        return self.skills[0] if self.skills else None

    def to_dict(self) -> dict:
        return {"address": self.address, "name": self.name, "skills": list(self.skills)}


def parse_profile(address: str, data: dict) -> Participant:
    try:
        return Participant(
            address=address,
            name=decode_text(data["name"]),
            skills=[decode_text(s) for s in data["skills"]],
            contact=decode_text(data.get("contact_info", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ProfileShapeError(f"unexpected User resource at {address}: {e}") from e


class Directory:
    """Registered participants and their current profiles."""

    def __init__(self, reader: LedgerReader, ids: ModuleIds,
                 cache: Cache | None = None, scheduler: RequestScheduler | None = None):
        self.reader = reader
        self.ids = ids
        self.cache = cache or Cache()
        self.scheduler = scheduler

    async def _call(self, fn, *args):
        if self.scheduler is not None:
            return await self.scheduler.run(fn, *args)
        return await fn(*args)

    async def registrations(self) -> list[tuple[str, str]]:
        """(address, name) for every registration event, first one per address."""
        async def compute():
            events = await self._call(
                self.reader.read_events, self.ids.address,
                self.ids.registration_events, REGISTRATION_FIELD,
            )
            seen = {}
            for e in sorted(events, key=lambda e: e["sequence_number"]):
                try:
                    addr = normalize_address(e["data"]["addr"])
                    name = decode_text(e["data"]["name"])
                except (KeyError, TypeError, AttributeError, ValueError) as err:
                    logger.debug("skipping registration #%s: %s", e["sequence_number"], err)
                    continue
                seen.setdefault(addr, name)
            return list(seen.items())
        return await self.cache.get_or_compute(REGISTRATIONS_KEY, REGISTRATIONS_TTL, compute)

    async def user_exists(self, address: str) -> bool:
        address = normalize_address(address)

        async def compute():
            result = await self._call(self.reader.view, self.ids.user_exists, [address])
            return bool(result[0])
        return await self.cache.get_or_compute(f"exists:{address}", USER_EXISTS_TTL, compute)

    async def profile(self, address: str) -> Participant | None:
        """Current profile, or None if no User resource exists."""
        address = normalize_address(address)

        async def compute():
            if not await self.user_exists(address):
                return None
            try:
                data = await self._call(self.reader.read_resource, address, self.ids.user)
            except NotFoundError:
                return None
            return parse_profile(address, data)
        return await self.cache.get_or_compute(f"profile:{address}", PROFILE_TTL, compute)

    async def participants(self, exclude: str | None = None) -> list[Participant]:
        """Every registered participant whose profile can still be read."""
        exclude = normalize_address(exclude) if exclude else None
        out = []
        for address, name in await self.registrations():
            if address == exclude:
                continue
            try:
                p = await self.profile(address)
            except (LedgerError, ProfileShapeError) as e:
                logger.debug("skipping %s: %s", address, e)
                continue
            if p is not None:
                out.append(p)
        return out

    async def teachers(self, exclude: str | None = None) -> list[Participant]:
        """Participants offering at least one skill."""
        return [p for p in await self.participants(exclude=exclude) if p.skills]

    async def balance(self, address: str) -> int | None:
        """Coin balance in octas, or None if the account holds no coin store."""
        address = normalize_address(address)

        async def compute():
            try:
                data = await self._call(self.reader.read_resource, address, COIN_STORE_TYPE)
            except NotFoundError:
                return None
            return int(data["coin"]["value"])
        return await self.cache.get_or_compute(f"balance:{address}", BALANCE_TTL, compute)

    async def coin_registered(self, address: str) -> bool:
        address = normalize_address(address)

        async def compute():
            try:
                await self._call(self.reader.read_resource, address, COIN_STORE_TYPE)
            except NotFoundError:
                return False
            return True
        return await self.cache.get_or_compute(f"coin:{address}", COIN_REGISTRATION_TTL, compute)

    async def contact_info(self, request_id: int, requester: str) -> str:
        """Counterparty contact for a negotiation. Access is enforced by the ledger."""
        result = await self._call(
            self.reader.view, self.ids.get_contact_info,
            [str(request_id), normalize_address(requester)],
        )
        return decode_text(result[0])

    def invalidate(self, address: str | None = None) -> None:
        if address is None:
            self.cache.invalidate(REGISTRATIONS_KEY)
            for prefix in ADDRESS_KEYS:
                self.cache.invalidate_prefix(f"{prefix}:")
            return
        address = normalize_address(address)
        for prefix in ADDRESS_KEYS:
            self.cache.invalidate(f"{prefix}:{address}")

"""Tests for directory.py: registrations, profiles, teachers and balances."""

import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from cache import Cache
from client import encode_text
from directory import Directory, ProfileShapeError, parse_profile
from protocol import BALANCE_TTL, LESSON_PRICE, TransientError, UnexpectedLedgerError
from conftest import ALICE, BOB, CAROL


@pytest.fixture
def directory(reader, ids, clock):
    return Directory(reader, ids, cache=Cache(clock=clock))


class TestParseProfile:
    def test_decodes_byte_fields(self):
        data = {"name": encode_text("Ada"), "skills": [encode_text("guitar"), [104, 105]],
                "contact_info": encode_text("ada@example.com")}
        p = parse_profile(ALICE, data)
        assert p.name == "Ada"
        assert p.skills == ["guitar", "hi"]
        assert p.contact == "ada@example.com"
        assert p.default_skill == "guitar"

    def test_missing_field_raises(self):
        with pytest.raises(ProfileShapeError):
            parse_profile(ALICE, {"name": encode_text("Ada")})

    def test_to_dict_omits_contact(self):
        p = parse_profile(ALICE, {"name": "Ada", "skills": [], "contact_info": "secret"})
        assert p.to_dict() == {"address": ALICE, "name": "Ada", "skills": []}
        assert p.default_skill is None


class TestTeachers:
    @pytest.mark.asyncio
    async def test_only_participants_with_skills(self, reader, directory):
        reader.register(ALICE, "Alice")
        reader.register(BOB, "Bob", skills=["guitar"])
        teachers = await directory.teachers()
        assert [(t.address, t.skills) for t in teachers] == [(BOB, ["guitar"])]

    @pytest.mark.asyncio
    async def test_exclude_current_account(self, reader, directory):
        reader.register(BOB, "Bob", skills=["guitar"])
        reader.register(CAROL, "Carol", skills=["chess"])
        teachers = await directory.teachers(exclude=BOB)
        assert [t.name for t in teachers] == ["Carol"]

    @pytest.mark.asyncio
    async def test_unreadable_profile_is_skipped(self, reader, directory, ids):
        reader.register(BOB, "Bob", skills=["guitar"])
        reader.register(CAROL, "Carol", skills=["chess"])
        reader.resources[(CAROL, ids.user)] = {"name": encode_text("Carol")}
        assert [t.name for t in await directory.teachers()] == ["Bob"]

    @pytest.mark.asyncio
    async def test_registration_stream_failure_propagates(self, reader, directory):
        reader.fail["handle"] = TransientError("down")
        with pytest.raises(TransientError):
            await directory.teachers()

    @pytest.mark.asyncio
    async def test_undecodable_registration_name_is_tolerated(self, reader, directory):
        reader.register(BOB, "Bob", skills=["guitar"])
        reader.emit_registration(addr=CAROL, name="0xff")
        assert [t.name for t in await directory.teachers()] == ["Bob"]
        assert (CAROL, "\ufffd") in await directory.registrations()

    @pytest.mark.asyncio
    async def test_malformed_registration_event_is_skipped(self, reader, directory):
        reader.emit_registration(addr="0xnothex", name="0x6869")
        reader.emit_registration(name="0x6869")
        reader.register(BOB, "Bob", skills=["guitar"])
        assert await directory.registrations() == [(BOB, "Bob")]
        assert [t.name for t in await directory.teachers()] == ["Bob"]

    @pytest.mark.asyncio
    async def test_duplicate_registration_keeps_first(self, reader, directory):
        reader.register(BOB, "Bob", skills=["guitar"])
        reader.register(BOB, "Robert", skills=["guitar"])
        regs = await directory.registrations()
        assert regs == [(BOB, "Bob")]

    @pytest.mark.asyncio
    async def test_profile_reflects_current_resource(self, reader, directory):
        reader.register(BOB, "Bob", skills=["guitar"])
        reader.register(BOB, "Robert", skills=["guitar", "piano"])
        p = await directory.profile(BOB)
        assert p.name == "Robert"
        assert p.skills == ["guitar", "piano"]


class TestProfiles:
    @pytest.mark.asyncio
    async def test_unregistered_profile_is_none(self, directory):
        assert await directory.profile(ALICE) is None
        assert await directory.user_exists(ALICE) is False

    @pytest.mark.asyncio
    async def test_user_exists_is_cached(self, reader, directory):
        reader.register(ALICE, "Alice")
        assert await directory.user_exists(ALICE)
        assert await directory.user_exists(ALICE)
        assert reader.count("view") == 1

    @pytest.mark.asyncio
    async def test_contact_info(self, reader, directory):
        reader.contacts[(4, BOB)] = "bob@example.com"
        assert await directory.contact_info(4, BOB) == "bob@example.com"
        assert reader.calls[-1][2] == ["4", BOB]

    @pytest.mark.asyncio
    async def test_contact_info_denied(self, directory):
        with pytest.raises(UnexpectedLedgerError):
            await directory.contact_info(4, CAROL)


class TestAccount:
    @pytest.mark.asyncio
    async def test_balance_and_registration(self, reader, directory):
        reader.fund(ALICE, 2 * LESSON_PRICE)
        assert await directory.coin_registered(ALICE) is True
        assert await directory.balance(ALICE) == 2 * LESSON_PRICE

    @pytest.mark.asyncio
    async def test_no_coin_store(self, directory):
        assert await directory.coin_registered(ALICE) is False
        assert await directory.balance(ALICE) is None

    @pytest.mark.asyncio
    async def test_balance_cached_until_ttl(self, reader, directory, clock):
        reader.fund(ALICE, 5)
        assert await directory.balance(ALICE) == 5
        reader.fund(ALICE, 7)
        assert await directory.balance(ALICE) == 5
        clock.advance(BALANCE_TTL)
        assert await directory.balance(ALICE) == 7

    @pytest.mark.asyncio
    async def test_invalidate_address(self, reader, directory):
        reader.fund(ALICE, 5)
        await directory.balance(ALICE)
        reader.fund(ALICE, 9)
        directory.invalidate(ALICE)
        assert await directory.balance(ALICE) == 9

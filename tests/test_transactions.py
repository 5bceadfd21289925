"""Tests for transactions.py: payload shapes and post-write invalidation."""

import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from cache import Cache
from client import encode_text
from directory import Directory
from events import EventAggregator
from protocol import EventKind, NegotiationState, UserRejectedError
from transactions import TransactionFacade, build_payload
from conftest import ALICE, BOB, FakeSigner


@pytest.fixture
def cache(clock):
    return Cache(clock=clock)


@pytest.fixture
def aggregator(reader, ids, cache):
    return EventAggregator(reader, ids, cache=cache)


@pytest.fixture
def directory(reader, ids, cache):
    return Directory(reader, ids, cache=cache)


def test_build_payload():
    assert build_payload("0x1::m::f", ["a"]) == {
        "type": "entry_function_payload",
        "function": "0x1::m::f",
        "type_arguments": [],
        "arguments": ["a"],
    }
    assert build_payload("0x1::m::f")["arguments"] == []


class TestPayloads:
    @pytest.mark.asyncio
    async def test_request_teach(self, ids):
        signer = FakeSigner()
        tx = TransactionFacade(signer, ids)
        await tx.request_teach("0x" + "B2" * 32, "guitar")
        payload = signer.payloads[0]
        assert payload["function"] == ids.request_teach
        assert payload["arguments"] == [BOB, encode_text("guitar")]

    @pytest.mark.asyncio
    async def test_register_encodes_text(self, ids):
        signer = FakeSigner()
        await TransactionFacade(signer, ids).register("Ada", "ada@example.com")
        assert signer.payloads[0]["function"].endswith("::skillshare::register_user_with_contact")
        assert signer.payloads[0]["arguments"] == [encode_text("Ada"), encode_text("ada@example.com")]

    @pytest.mark.asyncio
    async def test_negotiation_ids_sent_as_strings(self, ids):
        signer = FakeSigner()
        tx = TransactionFacade(signer, ids)
        calls = [
            (tx.accept, ids.accept_request),
            (tx.reject, ids.reject_request),
            (tx.deposit_payment, ids.deposit_payment),
            (tx.acknowledge_payment, ids.acknowledge_payment),
            (tx.request_release, ids.teacher_request_release),
            (tx.confirm_completion, ids.learner_confirm_completion),
            (tx.mark_communication_started, ids.mark_communication_started),
            (tx.report_non_response, ids.report_non_response),
            (tx.claim_refund, ids.claim_refund),
        ]
        for method, _ in calls:
            await method(12)
        assert [(p["function"], p["arguments"]) for p in signer.payloads] == [
            (fid, ["12"]) for _, fid in calls
        ]

    @pytest.mark.asyncio
    async def test_register_for_coin_has_no_arguments(self, ids):
        signer = FakeSigner()
        await TransactionFacade(signer, ids).register_for_coin()
        assert signer.payloads[0]["function"] == ids.register_for_coin
        assert signer.payloads[0]["arguments"] == []

    @pytest.mark.asyncio
    async def test_empty_skill_rejected_before_signing(self, ids):
        signer = FakeSigner()
        with pytest.raises(ValueError):
            await TransactionFacade(signer, ids).add_skill("   ")
        assert signer.payloads == []


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_write_makes_next_read_fresh(self, reader, ids, aggregator):
        reader.request(5, learner=ALICE, teacher=BOB)
        reader.advance(5, EventKind.ACCEPT)
        assert (await aggregator.status(5)).state == NegotiationState.ACCEPTED

        tx = TransactionFacade(FakeSigner(ALICE), ids, aggregator=aggregator)
        await tx.deposit_payment(5)
        reader.advance(5, EventKind.PAYMENT, timestamp=100)
        assert (await aggregator.status(5)).state == NegotiationState.PAYMENT_DEPOSITED

    @pytest.mark.asyncio
    async def test_rejected_signature_leaves_cache_alone(self, reader, ids, aggregator):
        reader.request(5)
        await aggregator.status(5)
        events_before = reader.count("events")

        tx = TransactionFacade(FakeSigner(reject=True), ids, aggregator=aggregator)
        with pytest.raises(UserRejectedError):
            await tx.accept(5)
        await aggregator.status(5)
        assert reader.count("events") == events_before

    @pytest.mark.asyncio
    async def test_add_skill_refreshes_directory(self, reader, ids, aggregator, directory):
        reader.register(ALICE, "Alice")
        assert await directory.teachers() == []

        tx = TransactionFacade(FakeSigner(ALICE), ids, aggregator=aggregator, directory=directory)
        await tx.add_skill("guitar")
        reader.register(ALICE, "Alice", skills=["guitar"])
        assert [t.address for t in await directory.teachers()] == [ALICE]

    @pytest.mark.asyncio
    async def test_register_refreshes_registrations(self, reader, ids, directory):
        assert await directory.registrations() == []
        tx = TransactionFacade(FakeSigner(ALICE), ids, directory=directory)
        await tx.register("Alice", "alice@example.com")
        reader.register(ALICE, "Alice")
        assert await directory.registrations() == [(ALICE, "Alice")]

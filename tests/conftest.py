import sys
import os
import copy

# Ensure the project root is on the path for all tests
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from client import LedgerReader, encode_text, normalize_address
from protocol import (
    COIN_STORE_TYPE, REGISTRATION_FIELD, EventKind, ModuleIds,
    NotFoundError, UnexpectedLedgerError, UserRejectedError,
)
from transactions import Signer


MODULE_ADDR = "0x" + "ab" * 32
ALICE = "0x" + "a1" * 32
BOB = "0x" + "b2" * 32
CAROL = "0x" + "c3" * 32


class FakeLedgerReader(LedgerReader):
    """In-memory ledger. Streams, resources and views are plain dicts.

    Set `fail[key] = exc` to make every read touching `key` raise exc, where
    key is an event field name, a resource type tag, or a view function id.
    """

    def __init__(self, ids: ModuleIds):
        self.ids = ids
        self.events = {}      # (holder, stream_type, field) -> [{"data", "sequence_number"}]
        self.resources = {}   # (address, type_tag) -> data
        self.contacts = {}    # (request_id, requester) -> contact
        self.fail = {}
        self.calls = []

    # --- fixture builders ---

    def _append(self, key, data):
        stream = self.events.setdefault(key, [])
        stream.append({"data": data, "sequence_number": len(stream)})

    def emit(self, kind: EventKind, **data):
        self._append((self.ids.address, self.ids.global_requests, kind.value), data)

    def request(self, request_id, learner=ALICE, teacher=BOB, skill="guitar"):
        self.emit(EventKind.REQUEST, id=str(request_id), learner=learner,
                  teacher=teacher, skill=encode_text(skill))

    def advance(self, request_id, kind: EventKind, timestamp=None):
        """Emit a later-stage event for request_id."""
        field = "id" if kind in (EventKind.ACCEPT, EventKind.REJECT) else "request_id"
        data = {field: str(request_id)}
        if timestamp is not None:
            data["timestamp"] = str(timestamp)
        self.emit(kind, **data)

    def emit_registration(self, **data):
        self._append((self.ids.address, self.ids.registration_events, REGISTRATION_FIELD), data)

    def register(self, address, name, skills=(), contact=""):
        self.emit_registration(addr=address, name=encode_text(name))
        self.resources[(normalize_address(address), self.ids.user)] = {
            "name": encode_text(name),
            "skills": [encode_text(s) for s in skills],
            "contact_info": encode_text(contact),
        }

    def fund(self, address, octas):
        self.resources[(normalize_address(address), COIN_STORE_TYPE)] = {
            "coin": {"value": str(octas)},
        }

    # --- LedgerReader ---

    def _check(self, key):
        if key in self.fail:
            raise self.fail[key]

    async def read_resource(self, address, type_tag):
        self.calls.append(("resource", address, type_tag))
        self._check(type_tag)
        try:
            return copy.deepcopy(self.resources[(address, type_tag)])
        except KeyError:
            raise NotFoundError(f"not found: {address} {type_tag}")

    async def read_events(self, holder, stream_type, field):
        self.calls.append(("events", stream_type, field))
        self._check(field)
        return copy.deepcopy(self.events.get((holder, stream_type, field), []))

    async def view(self, function_id, args):
        self.calls.append(("view", function_id, list(args)))
        self._check(function_id)
        if function_id == self.ids.user_exists:
            return [(normalize_address(args[0]), self.ids.user) in self.resources]
        if function_id == self.ids.get_contact_info:
            key = (int(args[0]), args[1])
            if key not in self.contacts:
                raise UnexpectedLedgerError("E_NOT_AUTHORIZED", status_code=400)
            return [encode_text(self.contacts[key])]
        raise UnexpectedLedgerError(f"unknown view {function_id}", status_code=400)

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c[0] == kind)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSigner(Signer):
    def __init__(self, address=ALICE, reject=False):
        self.address = address
        self.reject = reject
        self.payloads = []

    async def sign_and_submit(self, payload):
        if self.reject:
            raise UserRejectedError("user rejected the transaction")
        self.payloads.append(payload)
        return {"hash": f"0x{len(self.payloads):064x}"}


class RecordingSleep:
    """Stands in for asyncio.sleep; records delays and runs a hook instead of waiting."""

    def __init__(self, hook=None):
        self.delays = []
        self.hook = hook

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.hook is not None:
            self.hook(delay)


@pytest.fixture
def ids():
    return ModuleIds.from_address(MODULE_ADDR)


@pytest.fixture
def reader(ids):
    return FakeLedgerReader(ids)


@pytest.fixture
def clock():
    return FakeClock()

# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Ledger read client for the skillshare protocol.

Thin HTTP client with a pluggable reader interface.
Default reader: the Aptos full-node REST API over httpx.

Text fields travel on the ledger as byte vectors; encode/decode happens
here at the boundary so the rest of the client only sees str.
"""

import itertools
import logging
from abc import ABC, abstractmethod

import httpx

from protocol import (
    EVENT_PAGE_SIZE, NotFoundError, RateLimitedError, TransientError,
    UnexpectedLedgerError,
)

logger = logging.getLogger(__name__)

_call_counter = itertools.count(1)


# --- Boundary codec ---

def encode_text(text: str) -> str:
    """UTF-8 bytes as a 0x-prefixed hex string (REST form of vector<u8>)."""
    return "0x" + text.encode("utf-8").hex()


def decode_text(value) -> str:
    """Decode a ledger byte vector: 0x hex string, list of ints, or plain text.

    Lossy: anyone can write arbitrary bytes to the ledger, so invalid UTF-8
    becomes U+FFFD and a string that is not valid hex is returned as is.
    """
    if isinstance(value, str) and value.startswith("0x"):
        try:
            raw = bytes.fromhex(value[2:])
        except ValueError:
            return value
        return raw.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple, bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def normalize_address(address: str) -> str:
    """Canonical long form: lowercase, 0x prefix, 64 hex digits."""
    addr = address.strip().lower()
    if addr.startswith("0x"):
        addr = addr[2:]
    if not addr or len(addr) > 64 or any(c not in "0123456789abcdef" for c in addr):
        raise ValueError(f"invalid account address: {address!r}")
    return "0x" + addr.rjust(64, "0")


# --- Reader interface ---

class LedgerReader(ABC):
    """Override this to read from an indexer, a fixture, whatever."""

    @abstractmethod
    async def read_resource(self, address: str, type_tag: str) -> dict:
        """Point-in-time resource data. Raises NotFoundError if absent."""
        ...

    @abstractmethod
    async def read_events(self, holder: str, stream_type: str, field: str) -> list[dict]:
        """Full replay of one stream: [{"data": ..., "sequence_number": int}, ...]."""
        ...

    @abstractmethod
    async def view(self, function_id: str, args: list) -> list:
        """Side-effect-free remote call."""
        ...


class HTTPLedgerReader(LedgerReader):
    """Default. Talks to a full node's REST API."""

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int = EVENT_PAGE_SIZE,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.page_size = page_size
        self.timeout = timeout

    async def _request(self, method: str, path: str, params: dict | None = None,
                       json: dict | None = None):
        n = next(_call_counter)
        logger.debug("ledger call #%d: %s %s", n, method, path)
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.request(
                    method, f"{self.base_url}{path}", params=params, json=json,
                )
        except httpx.TransportError as e:
            raise TransientError(f"network error on {path}: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(f"not found: {path}")
        if resp.status_code == 429:
            retry_after = resp.headers.get("retry-after")
            logger.warning("rate limited on %s (retry-after=%s)", path, retry_after)
            raise RateLimitedError(
                f"rate limited on {path}",
                retry_after=float(retry_after) if retry_after else None,
            )
        if resp.status_code >= 500:
            raise TransientError(f"node error {resp.status_code} on {path}")
        if resp.status_code >= 400:
            raise UnexpectedLedgerError(
                f"request failed ({resp.status_code}) on {path}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        return resp.json()

    async def read_resource(self, address: str, type_tag: str) -> dict:
        body = await self._request("GET", f"/accounts/{address}/resource/{type_tag}")
        return body["data"]

    async def read_events(self, holder: str, stream_type: str, field: str) -> list[dict]:
        path = f"/accounts/{holder}/events/{stream_type}/{field}"
        events = []
        start = 0
        while True:
            page = await self._request("GET", path, params={"start": start, "limit": self.page_size})
            for e in page:
                events.append({
                    "data": e.get("data", {}),
                    "sequence_number": int(e.get("sequence_number", start)),
                })
            if len(page) < self.page_size:
                break
            start = events[-1]["sequence_number"] + 1
        return events

    async def view(self, function_id: str, args: list) -> list:
        return await self._request("POST", "/view", json={
            "function": function_id,
            "type_arguments": [],
            "arguments": args,
        })


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return "request failed"
    if isinstance(body, dict):
        return str(body.get("message", body.get("error_code", "request failed")))
    return "request failed"

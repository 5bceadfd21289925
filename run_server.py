#!/usr/bin/env python3
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Skillshare read API server.

Contract address from SKILLSHARE_MODULE_ADDR env var (never in code).
"""

import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import logging

import uvicorn

from cache import Cache
from client import HTTPLedgerReader
from protocol import LOG_LEVEL, MODULE_ADDR, NODE_URL, PORT, ModuleIds
from scheduler import RequestScheduler
from server.app import create_app


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    if not MODULE_ADDR:
        print("SKILLSHARE_MODULE_ADDR env var required", file=sys.stderr)
        sys.exit(1)

    configure_logging()
    app = create_app(
        reader=HTTPLedgerReader(NODE_URL),
        ids=ModuleIds.from_address(MODULE_ADDR),
        cache=Cache(),
        scheduler=RequestScheduler(),
    )
    logging.getLogger(__name__).info("serving %s via %s on port %d", MODULE_ADDR, NODE_URL, PORT)
    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""skillshare -- read negotiation state straight from the ledger.

Usage:
    skillshare status ID                      Lifecycle status of one request
    skillshare watch ID [--interval N]        Poll a request until Ctrl+C
    skillshare teachers [--exclude ADDR]      Registered participants with skills
    skillshare requests --learner ADDR        Requests sent by a learner
    skillshare requests --teacher ADDR        Requests received by a teacher
    skillshare balance ADDR                   Coin registration and balance

Environment:
    SKILLSHARE_MODULE_ADDR    Contract address (required)
    SKILLSHARE_NODE_URL       Full node REST endpoint
    SKILLSHARE_LOG_LEVEL      Log level (default INFO)
"""

import os, sys
sys.path.insert(0, os.path.dirname(os.path.realpath(__file__)))

import asyncio
import logging
import time

from cache import Cache
from client import HTTPLedgerReader
from directory import Directory
from events import EventAggregator
from poller import CancellationToken, StatusBoard, newly_accepted, poll_status
from protocol import (
    LESSON_PRICE, LOG_LEVEL, MODULE_ADDR, NODE_URL, POLL_INTERVAL,
    LedgerError, ModuleIds,
)
from scheduler import RequestScheduler
from status import can_report_non_response, hours_since_payment, progress_label


# --- Colors ---
C_RESET = "\033[0m"
C_RED = "\033[31m"
C_GREEN = "\033[32m"
C_YELLOW = "\033[33m"
C_CYAN = "\033[36m"
C_DIM = "\033[2m"
C_BOLD = "\033[1m"

if not sys.stderr.isatty():
    C_RESET = C_RED = C_GREEN = C_YELLOW = C_CYAN = C_DIM = C_BOLD = ""


def status(icon, msg):
    print(f"  {icon}  {msg}", file=sys.stderr)


def _flag(args, name, default=None):
    """Pop `--name VALUE` from args."""
    if name in args:
        i = args.index(name)
        if i + 1 >= len(args):
            raise ValueError(f"{name} needs a value")
        value = args[i + 1]
        del args[i:i + 2]
        return value
    return default


def _services():
    ids = ModuleIds.from_address(MODULE_ADDR)
    reader = HTTPLedgerReader(NODE_URL)
    cache = Cache()
    scheduler = RequestScheduler()
    return (EventAggregator(reader, ids, cache=cache, scheduler=scheduler),
            Directory(reader, ids, cache=cache, scheduler=scheduler))


def print_negotiation(s, now=None):
    now = now if now is not None else time.time()
    color = C_RED if s.rejected or s.refunded else C_GREEN if s.completed else C_CYAN
    print(f"#{s.id}  {color}{progress_label(s)}{C_RESET}  {C_BOLD}{s.skill}{C_RESET}")
    print(f"    learner  {s.learner}")
    print(f"    teacher  {s.teacher}")
    steps = [("pay", s.payment_deposited), ("acknowledge", s.acknowledged),
             ("contact", s.communication_started), ("complete", s.completed)]
    print("    " + "  ".join(f"{C_GREEN if done else C_DIM}{name}{C_RESET}" for name, done in steps))
    if s.payment_time is not None:
        print(f"    {hours_since_payment(s, now)}h since payment")
    if can_report_non_response(s, now):
        print(f"    {C_YELLOW}teacher has not made contact; non-response can be reported{C_RESET}")
    if s.conflicting:
        print(f"    {C_RED}both contact and non-response recorded{C_RESET}")


async def cmd_status(aggregator, request_id):
    print_negotiation(await aggregator.status(request_id))


async def cmd_watch(aggregator, request_id, interval):
    token = CancellationToken()
    board = StatusBoard()

    def on_update(previous, current):
        if previous is None or previous.state != current.state:
            if newly_accepted(previous, current) and previous is not None:
                status(f"{C_GREEN}✔{C_RESET}", f"Request #{current.id} accepted")
            print_negotiation(current)

    def on_error(rid, err):
        hint = "will retry" if err.retryable else "not retryable"
        status(f"{C_YELLOW}!{C_RESET}", f"#{rid}: {err} ({hint})")

    try:
        await poll_status(aggregator, [request_id], board, token, interval=interval,
                          on_update=on_update, on_error=on_error)
    finally:
        token.cancel()


async def cmd_teachers(directory, exclude):
    teachers = await directory.teachers(exclude=exclude)
    if not teachers:
        status(f"{C_DIM}▸{C_RESET}", "No teachers found.")
    for t in teachers:
        print(f"{t.address}  {C_BOLD}{t.name}{C_RESET}  {', '.join(t.skills)}")


async def cmd_requests(aggregator, learner, teacher):
    requests = await aggregator.requests_for(learner=learner, teacher=teacher)
    if not requests:
        status(f"{C_DIM}▸{C_RESET}", "No requests.")
    for s in requests:
        print_negotiation(s)


async def cmd_balance(directory, address):
    if not await directory.coin_registered(address):
        print(f"{address}  {C_YELLOW}not registered for coin{C_RESET}")
        return
    balance = await directory.balance(address) or 0
    enough = C_GREEN if balance >= LESSON_PRICE else C_RED
    print(f"{address}  {enough}{balance / LESSON_PRICE:.8f} APT{C_RESET}")


def main():
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(__doc__.strip())
        return

    logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
                        format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)

    cmd, args = sys.argv[1], sys.argv[2:]
    try:
        if not MODULE_ADDR:
            raise ValueError("SKILLSHARE_MODULE_ADDR env var required")
        aggregator, directory = _services()
        if cmd == "status" and args:
            asyncio.run(cmd_status(aggregator, int(args[0])))
        elif cmd == "watch" and args:
            interval = float(_flag(args, "--interval", POLL_INTERVAL))
            asyncio.run(cmd_watch(aggregator, int(args[0]), interval))
        elif cmd == "teachers":
            asyncio.run(cmd_teachers(directory, _flag(args, "--exclude")))
        elif cmd == "requests":
            learner, teacher = _flag(args, "--learner"), _flag(args, "--teacher")
            if not learner and not teacher:
                raise ValueError("requests needs --learner ADDR or --teacher ADDR")
            asyncio.run(cmd_requests(aggregator, learner, teacher))
        elif cmd == "balance" and args:
            asyncio.run(cmd_balance(directory, args[0]))
        else:
            print(__doc__.strip(), file=sys.stderr)
            sys.exit(2)
    except KeyboardInterrupt:
        status(f"{C_DIM}▸{C_RESET}", "Stopped.")
    except LedgerError as e:
        hint = " (temporary, try again)" if e.retryable else ""
        status(f"{C_RED}✗{C_RESET}", f"{e}{hint}")
        sys.exit(1)
    except ValueError as e:
        status(f"{C_RED}✗{C_RESET}", str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()

import json
import logging

import structlog

from partyledger.logging import configure_logging, get_logger
from partyledger.services.ledger import EventLedger


def test_ledger_events_are_json(caplog):
    configure_logging("INFO")
    try:
        caplog.set_level(logging.INFO)
        ledger = EventLedger("0xowner")
        ledger.register("@bighero6", 10**17, "0xguest")

        records = [json.loads(r.getMessage()) for r in caplog.records if r.getMessage().startswith("{")]
        register = [r for r in records if r["event"] == "ledger.register"]
        assert register and register[0]["participant"] == "0xguest"
        assert register[0]["level"] == "info"
    finally:
        structlog.reset_defaults()


def test_unknown_level_falls_back_to_info():
    configure_logging("chatty")
    try:
        log = get_logger("test")
        log.info("test.event")
    finally:
        structlog.reset_defaults()

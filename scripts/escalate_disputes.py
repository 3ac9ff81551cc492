#!/usr/bin/env python3
"""Escalate disputes left open past the escalation window.

Meant to run from cron (hourly is plenty):

    python scripts/escalate_disputes.py

Talks to the database directly; for deployments where only the API is
reachable, call ``POST /internal/disputes/escalate`` with the
``X-Cron-Secret`` header instead.
"""

import asyncio
import json
import logging
import sys

from gigescrow.database import async_session_factory, engine
from gigescrow.services.disputes import run_escalation_sweep
from gigescrow.services.email import get_email_sender

logger = logging.getLogger("escalate_disputes")


async def main() -> int:
    try:
        async with async_session_factory() as db:
            result = await run_escalation_sweep(db, get_email_sender())
    except Exception:
        logger.exception("Escalation sweep failed")
        return 1
    finally:
        await engine.dispose()

    print(json.dumps({
        "success": True,
        "escalated": result.escalated,
        "dispute_ids": [str(d) for d in result.dispute_ids],
    }))
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(main()))

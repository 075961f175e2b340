"""
Background sweep that expires idle IVR calls.

A call whose gateway hung up without calling end() would stay active forever;
the reaper moves such calls to abandoned after the idle timeout and evicts
finished calls once their retention window has passed.
"""

from __future__ import annotations

import asyncio

from survey_ivr.ivr.engine import IvrSessionEngine
from survey_ivr.shared.logging import get_logger

logger = get_logger(__name__)


async def run_session_reaper(engine: IvrSessionEngine, interval_seconds: float) -> None:
    """Run reaper ticks until cancelled; a failed tick is logged and retried."""
    logger.info(
        "Session reaper starting",
        extra={"interval_seconds": interval_seconds},
    )
    while True:
        try:
            await engine.reap()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Session reaper tick failed")

        try:
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Session reaper cancelled; stopping")
            raise

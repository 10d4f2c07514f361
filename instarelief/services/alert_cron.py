"""Background NOAA polling loop.

Runs ``process_active_alerts`` every ``alert_cron_interval_seconds`` in its
own session. Started from the FastAPI lifespan when ``ALERT_CRON_ENABLED``
is set; the ``/admin/alerts/fetch`` endpoint runs the same pipeline on demand.
"""

from __future__ import annotations

import asyncio
import logging

from instarelief.core.config import settings
from instarelief.core.database import async_session_factory
from instarelief.services import alert_processor, noaa_client

logger = logging.getLogger(__name__)

_running = False


async def _tick() -> None:
    async with async_session_factory() as session:
        try:
            summary = await alert_processor.process_active_alerts(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    if summary.alerts_processed:
        logger.info(
            "Alert cron: %s (%d ZIP fan-outs)", summary.message, len(summary.zip_results)
        )


async def run_alert_loop() -> None:
    """Main polling loop. Runs until cancelled or ``stop()`` is called."""
    global _running
    _running = True
    interval = settings.alert_cron_interval_seconds
    logger.info("Alert cron started (interval=%ds)", interval)

    while _running:
        try:
            await _tick()
        except asyncio.CancelledError:
            break
        except noaa_client.NOAAError as exc:
            logger.warning("NOAA unavailable: %s", exc)
        except Exception:
            logger.exception("Alert cron tick failed unexpectedly")

        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            break

    logger.info("Alert cron stopped")


def stop() -> None:
    global _running
    _running = False

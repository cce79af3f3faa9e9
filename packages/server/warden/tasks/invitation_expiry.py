"""
Background task: expire pending invitations past their expiry time.

Acceptance and listing already expire overdue invitations on the way, so this
sweep only keeps the stored status honest for invitations nobody touches.
Scheduled to run periodically (e.g., every 15 minutes).
"""

from __future__ import annotations

import structlog

from warden.core.config import get_settings
from warden.core.logging import configure_logging
from warden.main import build_default_services
from warden.services import Services

log = structlog.get_logger()


async def expire_overdue_invitations(ctx: dict) -> int:
    """Expire overdue invitations. Returns how many changed status."""
    services: Services = ctx["services"]
    count = await services.invitations.expire_overdue()
    log.info("invitation_expiry.sweep_done", expired=count)
    return count


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    ctx["services"] = build_default_services(settings)
    log.info("invitation_expiry.worker_started")


async def shutdown(ctx: dict) -> None:
    services = ctx.pop("services", None)
    if services is not None:
        await services.close()


# Worker settings
class WorkerSettings:
    """Worker configuration."""

    functions = [expire_overdue_invitations]
    on_startup = startup
    on_shutdown = shutdown
    cron_jobs = [
        {
            "coroutine": expire_overdue_invitations,
            "hour": None,  # every hour
            "minute": {0, 15, 30, 45},
        },
    ]

"""Main entry point for GroomRoute."""

import logging
import sys

from groom_route.config import get_settings


def setup_logging():
    """Configure logging based on settings."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    """Main entry point - runs CLI."""
    setup_logging()

    from groom_route.cli.commands import app

    app()


async def plan_day(appointments, base_location=None, optimized: bool = False):
    """Programmatic API: propose times for a day's appointments without saving.

    Example:
        import asyncio
        from groom_route.main import plan_day

        result = asyncio.run(plan_day([
            {"id": "a1", "time": "9:00 AM", "services": ["full-groom"],
             "client": {"address": "1 Main St, Miami, FL"}},
        ]))
    """
    from groom_route.scheduling.models import Appointment
    from groom_route.scheduling.optimizer import create_optimizer_from_settings
    from groom_route.scheduling.scheduler import AutoScheduler
    from groom_route.scheduling.travel import create_travel_provider_from_settings

    settings = get_settings()
    parsed = [Appointment.model_validate(a) for a in appointments]
    base_location = base_location or settings.base_location

    provider = create_travel_provider_from_settings()
    scheduler = AutoScheduler(
        provider,
        optimizer=create_optimizer_from_settings(provider),
        day_end_minutes=settings.day_end_minutes,
    )
    try:
        if optimized:
            return await scheduler.apply_optimized_order(parsed, base_location)
        return await scheduler.auto_schedule(parsed, base_location)
    finally:
        if provider.client is not None:
            await provider.client.aclose()


if __name__ == "__main__":
    main()

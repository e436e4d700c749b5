"""Drive the attendance service directly, without Flask.

Usage: python -m examples.example_usage <user_id> <latitude> <longitude>
"""

import asyncio
import importlib
import sys

from config import get_settings_module

from src.geo_attendance.geo_attendance.common.logging_utils import setup_logging
from src.geo_attendance.geo_attendance.container import build_container


async def show(container, user_id: str, latitude: float, longitude: float) -> None:
    result = await container.resolver.validate_location_access(user_id, latitude, longitude)
    print("inside fence:", result.is_valid, "|", result.error_message or result.entity)

    today = await container.attendance_service.get_today_attendance(user_id)
    print("today:", today)


def main():
    user_id, latitude, longitude = sys.argv[1], float(sys.argv[2]), float(sys.argv[3])
    settings = importlib.import_module(get_settings_module())
    setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    container = build_container(db_config=settings.DB_CONFIG, settings=settings)
    asyncio.run(show(container, user_id, latitude, longitude))


if __name__ == "__main__":
    main()

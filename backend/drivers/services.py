import logging

from django.utils import timezone

from drivers.models import DriverLocation

logger = logging.getLogger(__name__)


def update_driver_location(driver, lat, lon, heading=None, speed=None, accuracy=None, is_online=None):
    """
    Upsert the driver's live location. Used by:
    - HTTP fallback
    - WebSocket driver tracking events

    ``is_online`` is left unchanged when not given.
    """
    defaults = {
        "latitude": lat,
        "longitude": lon,
        "heading": heading,
        "speed": speed,
        "accuracy": accuracy,
        "last_update": timezone.now(),
    }
    if is_online is not None:
        defaults["is_online"] = is_online

    location, created = DriverLocation.objects.update_or_create(driver=driver, defaults=defaults)
    if created:
        logger.info("Driver %s started reporting location", driver.id)
    return location


def set_driver_online(driver, online: bool):
    """
    Flip the driver's availability flag.

    Returns the DriverLocation, or None when the driver never reported a
    position (a driver without a location cannot be located anyway).
    """
    updated = DriverLocation.objects.filter(driver=driver).update(
        is_online=online,
        last_update=timezone.now(),
    )
    if not updated:
        return None
    logger.info("Driver %s is now %s", driver.id, "online" if online else "offline")
    return DriverLocation.objects.get(driver=driver)

"""Singleton platform settings stored under the well-known id ``global``."""

import logging

from errors import ValidationError
from models import db, SystemSettings, insert_ignore

logger = logging.getLogger(__name__)

SETTINGS_ID = "global"

DEFAULTS = {
    "maintenance_mode": False,
    "allow_registration": True,
    "commission_rate": 10.0,
    "support_phone": None,
}


def ensure_settings():
    """Create the settings row if it does not exist yet. Safe to call repeatedly."""
    values = dict(DEFAULTS, id=SETTINGS_ID)
    if insert_ignore(SystemSettings, values):
        logger.info("Created default platform settings")
    db.session.commit()


def get_settings():
    settings = db.session.get(SystemSettings, SETTINGS_ID)
    if settings is None:
        ensure_settings()
        settings = db.session.get(SystemSettings, SETTINGS_ID)
    return settings


def update_settings(data):
    settings = get_settings()
    if "maintenance_mode" in data:
        settings.maintenance_mode = bool(data["maintenance_mode"])
    if "allow_registration" in data:
        settings.allow_registration = bool(data["allow_registration"])
    if "commission_rate" in data:
        try:
            rate = float(data["commission_rate"])
        except (TypeError, ValueError):
            raise ValidationError("commission_rate must be a number")
        if rate < 0 or rate > 100:
            raise ValidationError("commission_rate must be between 0 and 100")
        settings.commission_rate = rate
    if "support_phone" in data:
        settings.support_phone = data["support_phone"] or None
    db.session.commit()
    logger.info("Platform settings updated: %s", sorted(data.keys()))
    return settings

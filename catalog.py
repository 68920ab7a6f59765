"""
Service category catalog.

Categories are plain reference data: listing, keyword search and admin CRUD.
Deleting a category never touches jobs that reference it; such jobs resolve
to ``UNKNOWN_SERVICE`` when presented.
"""

import logging

from sqlalchemy import or_

from errors import NotFound, ValidationError
from models import db, ServiceCategory

logger = logging.getLogger(__name__)

UNKNOWN_SERVICE = "Unknown Service"
DEFAULT_ICON = "wrench"

ICON_VARIANTS = frozenset({
    "wrench", "zap", "droplet", "hammer", "palette", "car", "home",
    "smartphone", "search", "scissors", "truck", "thermometer", "camera",
    "briefcase", "key",
})

# Category keys the clients know about, mapped onto the icon set above.
CATEGORY_ICONS = {
    "electrician": "zap",
    "plumber": "droplet",
    "water": "droplet",
    "carpenter": "hammer",
    "painter": "palette",
    "mechanic": "car",
    "cleaning": "home",
    "appliance": "smartphone",
    "inspection": "search",
    "salon": "scissors",
    "mover": "truck",
    "ac": "thermometer",
    "photography": "camera",
    "business": "briefcase",
    "locksmith": "key",
}

DEFAULT_CATEGORIES = [
    {"name": "Electrician", "icon": "zap", "base_price": 300.0,
     "description": "Wiring, fittings, switchboards and fault repair"},
    {"name": "Plumber", "icon": "droplet", "base_price": 250.0,
     "description": "Leaks, taps, pipes and drainage"},
    {"name": "Carpenter", "icon": "hammer", "base_price": 350.0,
     "description": "Furniture repair and assembly"},
    {"name": "Painter", "icon": "palette", "base_price": 500.0,
     "description": "Interior and exterior painting"},
    {"name": "Cleaning", "icon": "home", "base_price": 400.0,
     "description": "Home and deep cleaning"},
    {"name": "AC Repair", "icon": "thermometer", "base_price": 450.0,
     "description": "Servicing, gas refill and repair"},
    {"name": "Appliance Repair", "icon": "smartphone", "base_price": 350.0,
     "description": "Washing machines, refrigerators and more"},
    {"name": "Mechanic", "icon": "car", "base_price": 400.0,
     "description": "Doorstep vehicle servicing"},
]


def resolve_icon(key):
    """Map a category key or icon name onto the closed icon set.

    Exact matches only; anything unrecognised falls back to ``wrench``.
    """
    normalized = (key or "").strip().lower()
    if normalized in ICON_VARIANTS:
        return normalized
    return CATEGORY_ICONS.get(normalized, DEFAULT_ICON)


def list_categories():
    return ServiceCategory.query.order_by(ServiceCategory.name.asc()).all()


def search_categories(keyword):
    keyword = (keyword or "").strip()
    if not keyword:
        return list_categories()
    pattern = "%{}%".format(keyword)
    return (
        ServiceCategory.query
        .filter(or_(
            ServiceCategory.name.ilike(pattern),
            ServiceCategory.description.ilike(pattern),
        ))
        .order_by(ServiceCategory.name.asc())
        .all()
    )


def get_category(category_id):
    category = db.session.get(ServiceCategory, category_id) if category_id else None
    if category is None:
        raise NotFound("Category not found")
    return category


def category_name(category_id):
    category = db.session.get(ServiceCategory, category_id) if category_id else None
    return category.name if category else UNKNOWN_SERVICE


def _clean_price(value):
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError("base_price must be a number")
    if price < 0:
        raise ValidationError("base_price cannot be negative")
    return round(price, 2)


def create_category(name, base_price, icon=None, description=None):
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if ServiceCategory.query.filter(ServiceCategory.name.ilike(name)).first():
        raise ValidationError("A category named '{}' already exists".format(name))

    category = ServiceCategory(
        name=name,
        icon=resolve_icon(icon or name),
        description=description or "Service",
        base_price=_clean_price(base_price),
    )
    db.session.add(category)
    db.session.commit()
    logger.info("Category created: %s (%s)", category.name, category.id)
    return category


def update_category(category_id, data):
    category = get_category(category_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty")
        clash = ServiceCategory.query.filter(
            ServiceCategory.name.ilike(name), ServiceCategory.id != category.id
        ).first()
        if clash:
            raise ValidationError("A category named '{}' already exists".format(name))
        category.name = name
    if "icon" in data:
        category.icon = resolve_icon(data.get("icon"))
    if "description" in data:
        category.description = data.get("description")
    if "base_price" in data:
        category.base_price = _clean_price(data.get("base_price"))
    db.session.commit()
    return category


def delete_category(category_id):
    category = get_category(category_id)
    db.session.delete(category)
    db.session.commit()
    logger.info("Category deleted: %s (%s)", category.name, category_id)


def seed_default_categories():
    """Insert any default category that is missing. Returns the number added."""
    added = 0
    for entry in DEFAULT_CATEGORIES:
        exists = ServiceCategory.query.filter(ServiceCategory.name == entry["name"]).first()
        if exists:
            continue
        db.session.add(ServiceCategory(**entry))
        added += 1
    db.session.commit()
    return added

"""
Worker matching: the open-job feed and its distance ordering.

The feed is a snapshot read. Two workers may see the same job; only one of
them can win it, see ``lifecycle.accept_job``.
"""

import logging
from math import radians, cos, sin, asin, sqrt, isfinite

from flask import current_app

from errors import NotAuthorized, ValidationError
from models import Job, JobStatus, Role, WorkerStatus

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
FEED_LIMIT = 100


def haversine_km(lat1, lng1, lat2, lng2):
    """Return distance in kilometres between two GPS points."""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))


def parse_coordinate(value, name, limit):
    """Parse one latitude or longitude; blank means not given."""
    if value is None or value == "":
        return None
    try:
        coordinate = float(value)
    except (TypeError, ValueError):
        raise ValidationError("{} must be a number".format(name))
    if not isfinite(coordinate) or abs(coordinate) > limit:
        raise ValidationError("{} is out of range".format(name))
    return coordinate


def parse_position(lat, lng, lat_name="lat", lng_name="lng"):
    """Return ``(lat, lng)`` or ``(None, None)``. Half a position is an error."""
    lat = parse_coordinate(lat, lat_name, 90)
    lng = parse_coordinate(lng, lng_name, 180)
    if (lat is None) != (lng is None):
        raise ValidationError("{} and {} must be given together".format(lat_name, lng_name))
    return lat, lng


def _has_coordinates(job):
    return job.location_lat is not None and job.location_lng is not None


def sort_by_distance(jobs, origin):
    """Pair each job with its distance from ``origin`` and sort nearest first.

    ``origin`` is a ``(lat, lng)`` tuple or None. Jobs without coordinates,
    or every job when there is no origin, get a distance of None and go to
    the end in their incoming order.
    """
    pairs = []
    for job in jobs:
        distance = None
        if origin is not None and _has_coordinates(job):
            distance = round(haversine_km(origin[0], origin[1], job.location_lat, job.location_lng), 2)
        pairs.append((job, distance))
    # list.sort is stable, so ties and unknown distances keep their order.
    pairs.sort(key=lambda pair: (pair[1] is None, pair[1] if pair[1] is not None else 0.0))
    return pairs


def _origin_for(worker, lat, lng):
    lat, lng = parse_position(lat, lng)
    if lat is not None:
        return (lat, lng)
    if worker.current_lat is not None and worker.current_lng is not None:
        return (worker.current_lat, worker.current_lng)
    return None


def available_jobs(worker, lat=None, lng=None):
    """Open jobs a worker may accept, nearest first.

    Returns a list of ``(job, distance_km)`` pairs.
    """
    if worker.role != Role.WORKER or worker.worker_status != WorkerStatus.VERIFIED:
        raise NotAuthorized("Only verified workers can view available jobs")
    if not worker.is_online:
        return []

    query = Job.query.filter(Job.status == JobStatus.SEARCHING, Job.worker_id.is_(None))
    if worker.skills:
        query = query.filter(Job.category_id.in_(list(worker.skills)))
    jobs = query.order_by(Job.created_at.desc()).limit(FEED_LIMIT).all()

    origin = _origin_for(worker, lat, lng)
    radius = worker.service_radius_km or current_app.config.get("DEFAULT_SERVICE_RADIUS_KM", 10.0)

    feed = []
    for job, distance in sort_by_distance(jobs, origin):
        if distance is not None and distance > radius:
            continue
        feed.append((job, distance))
    logger.debug("Feed for worker %s: %d of %d open jobs", worker.id, len(feed), len(jobs))
    return feed

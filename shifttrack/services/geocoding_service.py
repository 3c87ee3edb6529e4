import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from shifttrack.core.settings import env_float
from shifttrack.database import SessionLocal
from shifttrack.models.location_log import LocationLog
from shifttrack.services.geo import centroid, cluster_sequential
from shifttrack.services.geocoding_client import ReverseGeocodingClient

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_RADIUS_M = 50.0
DEFAULT_RATE_LIMIT_SECONDS = 1.1


def geocode_entry_locations(
    time_entry_id: str,
    *,
    db: Optional[Session] = None,
    client: Optional[ReverseGeocodingClient] = None,
    sleep: Callable[[float], None] = time.sleep,
    radius_m: Optional[float] = None,
    rate_limit_seconds: Optional[float] = None,
) -> dict:
    """
    Attach addresses to the un-addressed location logs of one entry.

    Logs are clustered so that each run of nearby points costs a single
    reverse-geocoding call. Calls are strictly sequential with a fixed pause
    between them. Each cluster is written as soon as it resolves, so a run
    interrupted halfway can simply be repeated.

    If db is provided, updates are flushed and the caller owns the commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if client is None:
        client = ReverseGeocodingClient()
    if radius_m is None:
        radius_m = env_float("GEOCODING_CLUSTER_RADIUS_M", DEFAULT_CLUSTER_RADIUS_M)
    if rate_limit_seconds is None:
        rate_limit_seconds = env_float("GEOCODING_RATE_LIMIT_SECONDS", DEFAULT_RATE_LIMIT_SECONDS)

    try:
        logs = (
            db.query(LocationLog)
            .filter(
                LocationLog.time_entry_id == str(time_entry_id),
                LocationLog.address.is_(None),
            )
            .order_by(LocationLog.recorded_at.asc())
            .all()
        )

        if not logs:
            logger.info("No un-geocoded location logs", extra={"time_entry_id": time_entry_id})
            return {"geocodedCount": 0}

        clusters = cluster_sequential(logs, radius_m)
        logger.info(
            "Geocoding location logs",
            extra={
                "time_entry_id": time_entry_id,
                "log_count": len(logs),
                "cluster_count": len(clusters),
            },
        )

        geocoded_count = 0

        for index, cluster in enumerate(clusters):
            if index > 0:
                sleep(rate_limit_seconds)

            point = centroid(cluster)
            address = client.reverse_geocode(point.lat, point.lon)
            if not address:
                continue

            ids = [log.id for log in cluster]
            try:
                updated = (
                    db.query(LocationLog)
                    .filter(LocationLog.id.in_(ids), LocationLog.address.is_(None))
                    .update({LocationLog.address: address}, synchronize_session=False)
                )
                if owns_db:
                    db.commit()
                else:
                    db.flush()
                geocoded_count += int(updated)
            except Exception:
                if owns_db:
                    db.rollback()
                logger.exception(
                    "Failed to store geocoded address",
                    extra={"time_entry_id": time_entry_id, "log_count": len(ids)},
                )
                if not owns_db:
                    raise

        logger.info(
            "Geocoding finished",
            extra={
                "time_entry_id": time_entry_id,
                "geocoded_count": geocoded_count,
                "log_count": len(logs),
            },
        )
        return {"geocodedCount": geocoded_count}
    finally:
        if owns_db:
            db.close()

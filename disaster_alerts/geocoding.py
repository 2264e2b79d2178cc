"""Resolve free-text post locations to coordinates.

Posts often name a place ("Kuala Lumpur", "Shah Alam") without carrying
coordinates. When geocoding is enabled the name is looked up with geopy's
Nominatim geocoder behind a rate limiter, and results (including misses)
are cached for the lifetime of the :class:`Geocoder`.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from geopy.exc import GeopyError
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from .config import CONFIG, Config
from .models import Coordinates


logger = logging.getLogger(__name__)


class Geocoder:
    def __init__(self, config: Config | None = None, geocode=None):
        self.config = config or CONFIG
        self._geocode = geocode
        self._cache: Dict[str, Optional[Coordinates]] = {}
        self._lock = threading.Lock()

    def _get_geocode(self):
        if self._geocode is None:
            geolocator = Nominatim(user_agent="disaster-alerts-pipeline")
            self._geocode = RateLimiter(
                geolocator.geocode, min_delay_seconds=1, max_retries=2, error_wait_seconds=2
            )
        return self._geocode

    def lookup(self, location: Optional[str]) -> Optional[Coordinates]:
        """Return coordinates for ``location`` or ``None`` if unknown."""
        if not location or not location.strip():
            return None
        name = location.strip()
        country = self.config.default_country.strip()
        # Avoid duplicating the country in the query
        query = f"{name}, {country}" if country and name.lower() != country.lower() else name
        with self._lock:
            if query in self._cache:
                return self._cache[query]
        try:
            found = self._get_geocode()(query, timeout=5)
        except (GeopyError, ValueError) as exc:
            logger.warning("Geocoding failed for %s: %s", query, exc)
            return None
        coords = Coordinates(lat=found.latitude, lng=found.longitude) if found else None
        with self._lock:
            self._cache[query] = coords
        return coords

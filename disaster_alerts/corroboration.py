"""Corroborate text-derived disaster scores with an independent hazard signal.

Text classification, LLM-based or not, is not trusted on its own to justify
a public alert. The Malaysian government weather API (data.gov.my) provides
active weather warnings, forecasts and earthquake reports; these are folded
into a single hazard severity in [0, 1]:

- base severity 0.3
- +0.4 when any weather warning is active right now
- +0.3 when an earthquake of magnitude 4.0 or more happened in the last 24 hours
- +0.2 when a forecast mentions storm conditions
- capped at 1.0

Posts without coordinates get a location-agnostic baseline. When the source
cannot be reached the signal degrades to a conservative default that does
not exceed the verification threshold, so the pipeline keeps running but
nothing is verified on an unavailable signal.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, List, Optional

import pandas as pd
import requests

from .config import CONFIG, Config
from .errors import CorroborationUnavailable
from .models import Coordinates, HazardSignal, utc_now


logger = logging.getLogger(__name__)

BASELINE_SIGNAL = HazardSignal(severity=0.6, source="baseline")
UNAVAILABLE_SIGNAL = HazardSignal(severity=0.5, source="unavailable")

STORM_KEYWORDS = ("ribut petir", "ribut", "hujan lebat", "angin kencang")
FORECAST_FIELDS = ("morning_forecast", "afternoon_forecast", "night_forecast", "summary_forecast")
MIN_EARTHQUAKE_MAGNITUDE = 4.0


def _parse_time(value: Any) -> Optional[dt.datetime]:
    """Parse an API timestamp to an aware UTC datetime, or ``None``."""
    if not isinstance(value, str) or not value.strip():
        return None
    ts = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def has_active_warning(warnings: List[dict], now: dt.datetime) -> bool:
    for warning in warnings:
        valid_from = _parse_time(warning.get("valid_from"))
        valid_to = _parse_time(warning.get("valid_to"))
        if valid_from and valid_to and valid_from <= now <= valid_to:
            return True
    return False


def has_recent_earthquake(quakes: List[dict], now: dt.datetime) -> bool:
    for quake in quakes:
        when = _parse_time(quake.get("utcdatetime") or quake.get("localdatetime"))
        try:
            magnitude = float(quake.get("magdefault") or 0)
        except (TypeError, ValueError):
            continue
        if when and (now - when) <= dt.timedelta(hours=24) and magnitude >= MIN_EARTHQUAKE_MAGNITUDE:
            return True
    return False


def has_storm_forecast(forecasts: List[dict]) -> bool:
    for forecast in forecasts:
        text = " ".join(str(forecast.get(field) or "") for field in FORECAST_FIELDS).lower()
        if any(keyword in text for keyword in STORM_KEYWORDS):
            return True
    return False


class HazardSignalClient:
    """Fetch the independent hazard signal for a pair of coordinates."""

    def __init__(self, config: Config | None = None, session: requests.Session | None = None):
        self.config = config or CONFIG
        self.session = session or requests.Session()

    def _get_list(self, path: str, limit: int) -> Optional[List[dict]]:
        """GET one endpoint. Returns ``None`` when that endpoint is unusable."""
        url = f"{self.config.hazard_api_base_url.rstrip('/')}/{path}"
        try:
            resp = self.session.get(url, params={"limit": limit}, timeout=self.config.hazard_timeout_seconds)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Hazard endpoint %s unavailable: %s", path, exc)
            return None
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def _fetch(self, now: dt.datetime) -> HazardSignal:
        warnings = self._get_list("warning", 10)
        forecasts = self._get_list("forecast", 5)
        quakes = self._get_list("warning/earthquake", 5)
        if warnings is None and forecasts is None and quakes is None:
            raise CorroborationUnavailable("all hazard endpoints failed")

        severity = 0.3
        source = "malaysia-weather"
        if warnings and has_active_warning(warnings, now):
            severity += 0.4
            source = "malaysia-warnings"
        if quakes and has_recent_earthquake(quakes, now):
            severity += 0.3
            source = "malaysia-earthquake"
        if forecasts and has_storm_forecast(forecasts):
            severity += 0.2
            source = "malaysia-storms"
        return HazardSignal(severity=round(min(1.0, severity), 4), source=source)

    def fetch(self, coordinates: Optional[Coordinates], now: Optional[dt.datetime] = None) -> HazardSignal:
        """Return the hazard signal, degrading instead of raising."""
        if coordinates is None:
            return BASELINE_SIGNAL
        try:
            signal = self._fetch(now or utc_now())
        except CorroborationUnavailable as exc:
            logger.warning("Corroboration unavailable (%s); using conservative default", exc)
            return UNAVAILABLE_SIGNAL
        logger.info("Hazard signal for %s: %.2f from %s", coordinates, signal.severity, signal.source)
        return signal


def verify(disaster_score: float, signal: HazardSignal, threshold: float | None = None) -> int:
    """Return 1 when the score is corroborated by the hazard signal, else 0.

    Both the text-derived score and the independent signal must exceed the
    threshold; a high score alone never verifies an event.
    """
    threshold = CONFIG.verify_threshold if threshold is None else threshold
    return 1 if signal.severity > threshold and disaster_score > threshold else 0

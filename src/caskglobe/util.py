"""Utility helpers for logging and feature loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from .models import GeographicFeature


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure root logging to console and optionally a file."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def features_from_geojson(
    payload: Mapping[str, Any],
    *,
    id_field: str | None = None,
) -> list[GeographicFeature]:
    """Build features from a GeoJSON FeatureCollection mapping."""
    raw_features = payload.get("features")
    if not isinstance(raw_features, list):
        raise ValueError("Expected list for 'features'")
    return [GeographicFeature.from_geojson(item, id_field=id_field) for item in raw_features]


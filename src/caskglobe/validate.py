"""Boundary validation for features handed to the viewport engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

import numpy as np
import shapely

from .models import GeographicFeature


_LOGGER = logging.getLogger("caskglobe.validate")


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class FeatureValidator:
    """Filters out features whose coordinates cannot be projected.

    Bad features are skipped with a warning rather than rejected, so one
    malformed record never takes a whole layer down.
    """

    def run(
        self,
        features: Iterable[GeographicFeature],
        *,
        layer: str = "",
    ) -> tuple[list[GeographicFeature], ValidationReport]:
        report = ValidationReport()
        valid: list[GeographicFeature] = []
        seen_ids: set[str] = set()
        prefix = f"[{layer}] " if layer else ""
        for feature in features:
            if not isinstance(feature, GeographicFeature):
                report.add_warning(f"{prefix}Skipping non-feature item of type {type(feature).__name__}")
                continue
            problem = check_geometry(feature.geometry)
            if problem is None and feature.feature_id in seen_ids:
                problem = "duplicate feature id"
            if problem is not None:
                report.add_warning(f"{prefix}Skipping feature '{feature.feature_id}': {problem}")
                continue
            seen_ids.add(feature.feature_id)
            valid.append(feature)
        report.add_info(f"{prefix}Accepted {len(valid)} features")
        for msg in report.warnings:
            _LOGGER.warning(msg)
        return (valid, report)


def check_geometry(geometry: Any) -> str | None:
    """Return a reason the geometry is unusable, or None when it is fine."""
    if geometry is None:
        return "missing geometry"
    if not hasattr(geometry, "geom_type"):
        return f"unsupported geometry object {type(geometry).__name__}"
    if geometry.is_empty:
        return "empty geometry"
    coords = shapely.get_coordinates(geometry)
    if coords.size == 0:
        return "geometry has no coordinates"
    if not bool(np.isfinite(coords).all()):
        return "non-finite coordinates"
    lat = coords[:, 1]
    if bool((lat < -90.0).any()) or bool((lat > 90.0).any()):
        return "latitude outside [-90, 90]"
    return None


def format_report_lines(report: ValidationReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Feature validation completed with no errors.")
    return lines

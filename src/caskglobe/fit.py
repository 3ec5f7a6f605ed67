"""Rotation and scale that frame a set of features in the viewport."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .config import FitConfig, FitPolicyConfig
from .models import FitResult, GeographicFeature, LonLat, is_finite_pair
from .projection import GeometryProjector, iter_parts, point_coords


_LOGGER = logging.getLogger("caskglobe.fit")

_MIN_EXTENT_PX = 1.0


class ZoomFitCalculator:
    """Computes where to rotate and how far to zoom for a zoom-to request.

    The live projection state is never touched: bounds are measured on a
    scratch copy rotated to the target anchor.
    """

    def __init__(
        self,
        projector: GeometryProjector,
        cfg: FitConfig | None = None,
        *,
        initial_scale: float | None = None,
    ) -> None:
        self.projector = projector
        self.cfg = cfg if cfg is not None else FitConfig()
        self.initial_scale = initial_scale if initial_scale is not None else projector.state.scale

    def compute_fit(
        self,
        features: Sequence[GeographicFeature | Any],
        viewport_width: float,
        viewport_height: float,
        margin_fraction: float | None = None,
        *,
        policy: str | FitPolicyConfig = "country",
    ) -> FitResult | None:
        if not features:
            return None
        fit_policy = self.cfg.policy(policy) if isinstance(policy, str) else policy
        margin = fit_policy.margin_fraction if margin_fraction is None else float(margin_fraction)

        primary = _geometry_of(features[0])
        anchor = (
            first_vertex(primary)
            if fit_policy.anchor == "first_vertex"
            else representative_anchor(primary)
        )
        if anchor is None:
            _LOGGER.warning("Cannot fit view: primary feature has no usable anchor")
            return None

        current_scale = self.projector.state.scale
        scratch = self.projector.state.copy()
        scratch.rotation_lambda = -anchor[0]
        scratch.rotation_phi = -anchor[1]
        scratch.rotation_gamma = 0.0
        bounds = self.projector.with_state(scratch).bounds(features)

        width = _MIN_EXTENT_PX if bounds is None else max(_MIN_EXTENT_PX, bounds.width)
        height = _MIN_EXTENT_PX if bounds is None else max(_MIN_EXTENT_PX, bounds.height)
        factor = min(viewport_width * margin / width, viewport_height * margin / height)
        scale = self._resolve_scale(current_scale=current_scale, factor=factor, policy=fit_policy)
        _LOGGER.debug(
            "Fit: anchor=(%.3f, %.3f) bounds=%.1fx%.1f factor=%.3f scale=%.1f",
            anchor[0],
            anchor[1],
            width,
            height,
            factor,
            scale,
        )
        return FitResult(center=anchor, scale=scale)

    def _resolve_scale(
        self,
        *,
        current_scale: float,
        factor: float,
        policy: FitPolicyConfig,
    ) -> float:
        upper = current_scale * policy.max_zoom_multiplier
        if policy.max_scale_factor is not None:
            upper = max(current_scale, min(upper, self.initial_scale * policy.max_scale_factor))
        # Fitting only ever zooms in.
        scale = max(current_scale, min(current_scale * factor, upper))
        floor = policy.min_absolute_scale
        if policy.min_scale_factor is not None:
            floor = max(floor, self.initial_scale * policy.min_scale_factor)
        return max(scale, floor)


def _geometry_of(item: Any) -> Any:
    if isinstance(item, GeographicFeature):
        return item.geometry
    return item


def explode_polygons(geometry: Any) -> list[Any]:
    if geometry is None or bool(getattr(geometry, "is_empty", True)):
        return []
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [geometry]
    if geom_type == "MultiPolygon":
        return [part for part in geometry.geoms if not part.is_empty]
    if geom_type == "GeometryCollection":
        out: list[Any] = []
        for part in geometry.geoms:
            out.extend(explode_polygons(part))
        return out
    return []


def largest_part(geometry: Any) -> Any:
    """Largest polygon of a multi-part geometry, so far-off islands do not drag the view."""
    components = explode_polygons(geometry)
    if len(components) <= 1:
        return components[0] if components else geometry
    ordered = sorted(
        components,
        key=lambda item: (
            -float(item.area),
            float(item.centroid.x),
            float(item.centroid.y),
        ),
    )
    return ordered[0]


def representative_anchor(geometry: Any) -> LonLat | None:
    if geometry is None or bool(getattr(geometry, "is_empty", True)):
        return None
    part = largest_part(geometry)
    centroid = part.centroid
    if centroid.is_empty:
        return None
    anchor = (float(centroid.x), float(centroid.y))
    return anchor if is_finite_pair(anchor) else None


def first_vertex(geometry: Any) -> LonLat | None:
    points = point_coords(geometry)
    if points:
        return points[0] if is_finite_pair(points[0]) else None
    for coords, _ in iter_parts(geometry):
        if coords and is_finite_pair(coords[0]):
            return (float(coords[0][0]), float(coords[0][1]))
    return None

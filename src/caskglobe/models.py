"""Domain models shared across the viewport engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Sequence

from shapely.geometry import shape


ScreenPoint = tuple[float, float]
LonLat = tuple[float, float]
Rotation = tuple[float, float, float]
_PixelBBox = tuple[float, float, float, float]


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def is_finite_pair(value: Any) -> bool:
    """True for a two-number sequence with finite components."""
    if value is None:
        return False
    try:
        first, second = value[0], value[1]
        return math.isfinite(float(first)) and math.isfinite(float(second))
    except (TypeError, ValueError, IndexError):
        return False


@dataclass(slots=True)
class ProjectionState:
    """Rotation and scale of the orthographic globe.

    Rotation follows the D3 convention: the view center is the negated
    (rotation_lambda, rotation_phi) pair.
    """

    rotation_lambda: float
    rotation_phi: float
    scale: float
    translate: ScreenPoint
    min_scale: float
    max_scale: float
    rotation_gamma: float = 0.0
    clip_angle: float = 90.0

    def __post_init__(self) -> None:
        if self.min_scale <= 0 or self.min_scale > self.max_scale:
            raise ValueError("Expected 0 < min_scale <= max_scale")
        self.scale = self.clamp_scale(self.scale)

    @classmethod
    def for_viewport(
        cls,
        width: float,
        height: float,
        *,
        initial_scale: float,
        min_factor: float,
        max_factor: float,
    ) -> ProjectionState:
        return cls(
            rotation_lambda=0.0,
            rotation_phi=0.0,
            scale=initial_scale,
            translate=(width / 2.0, height / 2.0),
            min_scale=initial_scale * min_factor,
            max_scale=initial_scale * max_factor,
        )

    @property
    def rotation(self) -> Rotation:
        return (self.rotation_lambda, self.rotation_phi, self.rotation_gamma)

    @property
    def center(self) -> LonLat:
        return (-self.rotation_lambda, -self.rotation_phi)

    def clamp_scale(self, value: float) -> float:
        return max(self.min_scale, min(float(value), self.max_scale))

    def copy(self) -> ProjectionState:
        return replace(self)

    def assign(self, other: ProjectionState) -> None:
        self.rotation_lambda = other.rotation_lambda
        self.rotation_phi = other.rotation_phi
        self.rotation_gamma = other.rotation_gamma
        self.scale = self.clamp_scale(other.scale)
        self.translate = other.translate


@dataclass(frozen=True, slots=True)
class GeographicFeature:
    """Geometry in lon/lat degrees plus its attribute bag."""

    feature_id: str
    geometry: Any
    properties: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        for key in ("name", "NAME", "Region"):
            value = self.properties.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return self.feature_id

    @classmethod
    def from_geojson(cls, data: Mapping[str, Any], *, id_field: str | None = None) -> GeographicFeature:
        geometry_raw = data.get("geometry")
        if not isinstance(geometry_raw, Mapping):
            raise ValueError("Expected mapping for 'geometry'")
        properties_raw = data.get("properties") or {}
        if not isinstance(properties_raw, Mapping):
            raise ValueError("Expected mapping for 'properties'")
        raw_id: Any = properties_raw.get(id_field) if id_field else data.get("id")
        if raw_id is None:
            for key in ("id", "ADM0_A3", "ISO_A3", "name", "NAME"):
                if properties_raw.get(key) is not None:
                    raw_id = properties_raw[key]
                    break
        feature_id = _require_str(str(raw_id) if raw_id is not None else "", "feature id")
        return cls(
            feature_id=feature_id,
            geometry=shape(geometry_raw),
            properties=dict(properties_raw),
        )


@dataclass(frozen=True, slots=True)
class ScreenPath:
    """Projected screen-space shape of one geometry."""

    parts: tuple[tuple[ScreenPoint, ...], ...]
    closed: bool

    @property
    def is_empty(self) -> bool:
        return not self.parts

    def iter_points(self) -> Sequence[ScreenPoint]:
        return [point for part in self.parts for point in part]

    def to_svg(self, precision: int = 2) -> str:
        commands: list[str] = []
        for part in self.parts:
            if not part:
                continue
            head, *tail = part
            commands.append(f"M{head[0]:.{precision}f},{head[1]:.{precision}f}")
            commands.extend(f"L{x:.{precision}f},{y:.{precision}f}" for x, y in tail)
            if self.closed:
                commands.append("Z")
        return "".join(commands)


@dataclass(frozen=True, slots=True)
class ScreenBounds:
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    def union(self, other: ScreenBounds) -> ScreenBounds:
        return ScreenBounds(
            x0=min(self.x0, other.x0),
            y0=min(self.y0, other.y0),
            x1=max(self.x1, other.x1),
            y1=max(self.y1, other.y1),
        )

    @classmethod
    def from_points(cls, points: Sequence[ScreenPoint]) -> ScreenBounds | None:
        if not points:
            return None
        xs = [point[0] for point in points]
        ys = [point[1] for point in points]
        return cls(x0=min(xs), y0=min(ys), x1=max(xs), y1=max(ys))


@dataclass(frozen=True, slots=True)
class LabelCandidate:
    """A label waiting for placement; input order is its priority."""

    key: str
    anchor: ScreenPoint | None
    size: tuple[float, float]


@dataclass(frozen=True, slots=True)
class PlacedLabel:
    key: str
    position: ScreenPoint
    offset: tuple[float, float]
    box: _PixelBBox
    source_index: int
    overlap: float = 0.0


@dataclass(frozen=True, slots=True)
class FitResult:
    center: LonLat
    scale: float

    @property
    def rotation(self) -> Rotation:
        return (-self.center[0], -self.center[1], 0.0)


@dataclass(slots=True)
class ViewportAnimation:
    """In-flight rotate/zoom tween; superseded by any newer request."""

    start_state: ProjectionState
    target_state: ProjectionState
    start_time: float
    duration: float
    easing: Callable[[float], float]
    generation: int
    on_complete: Callable[[], None] | None = None

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return max(0.0, min((now - self.start_time) / self.duration, 1.0))

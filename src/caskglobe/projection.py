"""Orthographic projection of geographic coordinates and geometries.

The globe uses the D3 conventions: a rotation of (lambda, phi, gamma) brings
the point (-lambda, -phi) to the center of the view, screen x grows to the
right and screen y grows downward. Projection works on unit vectors: every
geometry is densified along great circles once, converted to cartesian
vectors and cached. A frame then only costs one matrix product per part.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Sequence

import numpy as np
import shapely
from pyproj import Geod
from shapely.geometry import Polygon

from .models import (
    GeographicFeature,
    LonLat,
    ProjectionState,
    Rotation,
    ScreenBounds,
    ScreenPath,
    ScreenPoint,
    is_finite_pair,
)


_LOGGER = logging.getLogger("caskglobe.projection")

_SPHERE_SEGMENTS = 128
_CACHE_SIZE = 4096
_TWO_PI = 2.0 * math.pi


@dataclass(frozen=True, slots=True)
class _PreparedPart:
    vectors: np.ndarray
    closed: bool
    # Planar lon/lat outline of a closed ring, used to tell inside from outside.
    outline: Any = None


@dataclass(frozen=True, slots=True)
class _HorizonRun:
    """A visible stretch of a ring, from where it enters to where it leaves."""

    entry: float
    exit: float
    points: tuple[ScreenPoint, ...]


@lru_cache(maxsize=1)
def _sphere_geod() -> Geod:
    return Geod(ellps="sphere")


def angular_distance_deg(a: LonLat, b: LonLat) -> float:
    """Great-circle distance between two lon/lat points, in degrees."""
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    sin_dlat = math.sin((lat2 - lat1) / 2.0)
    sin_dlon = math.sin((lon2 - lon1) / 2.0)
    h = sin_dlat * sin_dlat + math.cos(lat1) * math.cos(lat2) * sin_dlon * sin_dlon
    return math.degrees(2.0 * math.asin(math.sqrt(max(0.0, min(h, 1.0)))))


def lonlat_to_vectors(coords: Sequence[Sequence[float]]) -> np.ndarray:
    arr = np.asarray(coords, dtype=float)[:, :2]
    lon = np.radians(arr[:, 0])
    lat = np.radians(arr[:, 1])
    cos_lat = np.cos(lat)
    return np.column_stack((cos_lat * np.cos(lon), cos_lat * np.sin(lon), np.sin(lat)))


def rotation_matrix(rotation: Rotation) -> np.ndarray:
    """Matrix taking geographic unit vectors into the view frame.

    In the view frame x points at the viewer, y to the right and z up.
    """
    d_lambda, d_phi, d_gamma = (math.radians(value) for value in rotation)
    cl, sl = math.cos(d_lambda), math.sin(d_lambda)
    cp, sp = math.cos(d_phi), math.sin(d_phi)
    cg, sg = math.cos(d_gamma), math.sin(d_gamma)
    rz = np.array([[cl, -sl, 0.0], [sl, cl, 0.0], [0.0, 0.0, 1.0]])
    ry = np.array([[cp, 0.0, -sp], [0.0, 1.0, 0.0], [sp, 0.0, cp]])
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cg, -sg], [0.0, sg, cg]])
    return rx @ ry @ rz


def densify_ring(coords: Sequence[Sequence[float]], max_segment_deg: float) -> list[tuple[float, float]]:
    """Insert great-circle intermediate points so no edge exceeds the limit."""
    points = [(float(item[0]), float(item[1])) for item in coords]
    if len(points) < 2:
        return points
    geod = _sphere_geod()
    out: list[tuple[float, float]] = [points[0]]
    for start, end in zip(points, points[1:]):
        angle = angular_distance_deg(start, end)
        steps = int(math.ceil(angle / max_segment_deg))
        # Antipodal edges have no unique great circle; keep them as given.
        if steps > 1 and angle < 179.999:
            out.extend(
                (float(lon), float(lat))
                for lon, lat in geod.npts(start[0], start[1], end[0], end[1], steps - 1)
            )
        out.append(end)
    return out


def iter_parts(geometry: Any) -> list[tuple[Sequence[Sequence[float]], bool]]:
    """Flatten a geometry into (coordinates, closed) parts."""
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "LineString":
        return [(list(geometry.coords), False)]
    if geom_type == "LinearRing":
        return [(list(geometry.coords), True)]
    if geom_type == "Polygon":
        parts: list[tuple[Sequence[Sequence[float]], bool]] = [(list(geometry.exterior.coords), True)]
        for interior in geometry.interiors:
            parts.append((list(interior.coords), True))
        return parts
    if geom_type in ("MultiLineString", "MultiPolygon", "GeometryCollection"):
        parts = []
        for part in geometry.geoms:
            parts.extend(iter_parts(part))
        return parts
    return []


def point_coords(geometry: Any) -> list[LonLat]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Point":
        return [(float(geometry.x), float(geometry.y))]
    if geom_type == "MultiPoint":
        return [(float(part.x), float(part.y)) for part in geometry.geoms]
    if geom_type == "GeometryCollection":
        out: list[LonLat] = []
        for part in geometry.geoms:
            out.extend(point_coords(part))
        return out
    return []


def _as_geometry(item: Any) -> Any:
    if isinstance(item, GeographicFeature):
        return item.geometry
    return item


class GeometryProjector:
    """Maps geographic input to screen space for one ProjectionState.

    Prepared geometries are kept in a bounded LRU keyed by object identity.
    Layers release theirs through `forget` when their features change.
    """

    def __init__(
        self,
        state: ProjectionState,
        *,
        max_segment_deg: float = 2.0,
        cache_size: int = _CACHE_SIZE,
        _cache: OrderedDict[int, tuple[Any, tuple[_PreparedPart, ...]]] | None = None,
    ) -> None:
        if cache_size < 1:
            raise ValueError(f"cache_size must be positive, got {cache_size}")
        self.state = state
        self.max_segment_deg = max_segment_deg
        self.cache_size = cache_size
        self._prepared = _cache if _cache is not None else OrderedDict()
        self._matrix_key: Rotation | None = None
        self._matrix = np.eye(3)

    def with_state(self, state: ProjectionState) -> GeometryProjector:
        """Projector over another (scratch) state sharing the prepared cache."""
        return GeometryProjector(
            state,
            max_segment_deg=self.max_segment_deg,
            cache_size=self.cache_size,
            _cache=self._prepared,
        )

    def clear_cache(self) -> None:
        self._prepared.clear()

    def forget(self, geometries: Iterable[Any]) -> int:
        """Drop prepared entries for the given geometries; returns how many."""
        dropped = 0
        for geometry in geometries:
            key = id(geometry)
            cached = self._prepared.get(key)
            if cached is not None and cached[0] is geometry:
                del self._prepared[key]
                dropped += 1
        return dropped

    def project(self, coord: Any) -> ScreenPoint | None:
        if not is_finite_pair(coord):
            return None
        vector = lonlat_to_vectors([coord])[0] @ self._rotation().T
        if vector[0] <= self._min_depth():
            return None
        return self._to_screen_point(vector[1], vector[2])

    def invert(self, point: Any) -> LonLat | None:
        if not is_finite_pair(point):
            return None
        tx, ty = self.state.translate
        k = self.state.scale
        y = (float(point[0]) - tx) / k
        z = (ty - float(point[1])) / k
        rho_sq = y * y + z * z
        if rho_sq > 1.0 + 1e-9:
            return None
        x = math.sqrt(max(0.0, 1.0 - rho_sq))
        return self._view_to_lonlat(np.array([x, y, z]))

    def view_center(self) -> LonLat | None:
        return self.invert(self.state.translate)

    def project_path(self, geometry: Any, *, cache: bool = True) -> ScreenPath | None:
        """Project a line or polygon geometry.

        With `cache=False` a geometry that is not already prepared is
        projected without being stored, which suits one-off shapes.
        """
        geometry = _as_geometry(geometry)
        prepared = self._prepare(geometry, store=cache)
        if not prepared:
            return None
        matrix = self._rotation().T
        parts: list[tuple[ScreenPoint, ...]] = []
        closed = all(part.closed for part in prepared)
        for part in prepared:
            view = part.vectors @ matrix
            if part.closed:
                parts.extend(self._project_ring(view, part.outline))
            else:
                parts.extend(self._project_line(view))
        if not parts:
            return None
        return ScreenPath(parts=tuple(parts), closed=closed)

    def sphere_path(self) -> ScreenPath:
        tx, ty = self.state.translate
        k = self.state.scale
        points = tuple(
            (
                tx + k * math.cos(2.0 * math.pi * idx / _SPHERE_SEGMENTS),
                ty + k * math.sin(2.0 * math.pi * idx / _SPHERE_SEGMENTS),
            )
            for idx in range(_SPHERE_SEGMENTS + 1)
        )
        return ScreenPath(parts=(points,), closed=True)

    def bounds(self, items: Any) -> ScreenBounds | None:
        """Screen bounding box of everything visible among the given features."""
        if isinstance(items, GeographicFeature) or hasattr(items, "geom_type"):
            items = [items]
        result: ScreenBounds | None = None
        for item in items:
            geometry = _as_geometry(item)
            points: list[ScreenPoint] = []
            for coord in point_coords(geometry):
                projected = self.project(coord)
                if projected is not None:
                    points.append(projected)
            path = self.project_path(geometry, cache=False)
            if path is not None:
                points.extend(path.iter_points())
            box = ScreenBounds.from_points(points)
            if box is None:
                continue
            result = box if result is None else result.union(box)
        return result

    def _prepare(self, geometry: Any, *, store: bool = True) -> tuple[_PreparedPart, ...]:
        if geometry is None:
            return ()
        key = id(geometry)
        cached = self._prepared.get(key)
        if cached is not None and cached[0] is geometry:
            self._prepared.move_to_end(key)
            return cached[1]
        prepared: list[_PreparedPart] = []
        for coords, closed in iter_parts(geometry):
            if len(coords) < (3 if closed else 2):
                continue
            if not all(is_finite_pair(item) for item in coords):
                _LOGGER.warning("Skipping geometry part with non-finite coordinates")
                continue
            dense = densify_ring(coords, self.max_segment_deg)
            prepared.append(
                _PreparedPart(
                    vectors=lonlat_to_vectors(dense),
                    closed=closed,
                    outline=Polygon([(item[0], item[1]) for item in coords]) if closed else None,
                )
            )
        result = tuple(prepared)
        if store:
            self._prepared[key] = (geometry, result)
            self._prepared.move_to_end(key)
            while len(self._prepared) > self.cache_size:
                self._prepared.popitem(last=False)
        return result

    def _project_line(self, view: np.ndarray) -> list[tuple[ScreenPoint, ...]]:
        depth = view[:, 0]
        visible = depth > self._min_depth()
        runs: list[tuple[ScreenPoint, ...]] = []
        current: list[ScreenPoint] = []
        for idx in range(len(view)):
            if idx > 0 and visible[idx] != visible[idx - 1]:
                current.append(self._horizon_point(self._horizon_angle(view[idx - 1], view[idx])))
                if not visible[idx]:
                    if len(current) >= 2:
                        runs.append(tuple(current))
                    current = []
            if visible[idx]:
                current.append(self._to_screen_point(view[idx, 1], view[idx, 2]))
        if len(current) >= 2:
            runs.append(tuple(current))
        return runs

    def _project_ring(self, view: np.ndarray, outline: Any) -> list[tuple[ScreenPoint, ...]]:
        """Clip a closed ring to the visible hemisphere.

        Visible stretches are kept as they are. Hidden stretches are replaced
        by arcs of the horizon circle, and which way each arc runs is decided
        by which side of the horizon lies inside the ring. A ring that
        wanders behind the globe can come back as several rings.
        """
        if len(view) > 1 and np.allclose(view[0], view[-1]):
            view = view[:-1]
        visible = view[:, 0] > self._min_depth()
        if visible.all():
            ring = [self._to_screen_point(y, z) for y, z in view[:, 1:]]
            ring.append(ring[0])
            return [tuple(ring)] if len(ring) >= 4 else []
        if not visible.any():
            # Entirely behind the globe, but it may still surround the view.
            center = self.view_center()
            if center is not None and _outline_contains(outline, center):
                return [tuple(self._horizon_arc(0.0, 2.0 * math.pi, endpoints=True))]
            return []
        return self._rejoin(self._visible_runs(view, visible), outline)

    def _visible_runs(self, view: np.ndarray, visible: np.ndarray) -> list[_HorizonRun]:
        count = len(view)
        start = next(idx for idx in range(count) if visible[idx] and not visible[idx - 1])
        runs: list[_HorizonRun] = []
        current: list[ScreenPoint] = []
        entry = 0.0
        for step in range(count):
            idx = (start + step) % count
            if not visible[idx]:
                continue
            prev = (idx - 1) % count
            nxt = (idx + 1) % count
            if not visible[prev]:
                entry = self._horizon_angle(view[prev], view[idx])
                current = [self._horizon_point(entry)]
            current.append(self._to_screen_point(view[idx, 1], view[idx, 2]))
            if not visible[nxt]:
                exit_angle = self._horizon_angle(view[idx], view[nxt])
                current.append(self._horizon_point(exit_angle))
                runs.append(_HorizonRun(entry=entry, exit=exit_angle, points=tuple(current)))
        return runs

    def _rejoin(self, runs: Sequence[_HorizonRun], outline: Any) -> list[tuple[ScreenPoint, ...]]:
        # Crossings sorted around the horizon split it into arcs that
        # alternate between inside and outside the ring.
        events = sorted(
            [(run.entry, True, idx) for idx, run in enumerate(runs)]
            + [(run.exit, False, idx) for idx, run in enumerate(runs)]
        )
        count = len(events)
        exit_position = {idx: pos for pos, (_, is_entry, idx) in enumerate(events) if not is_entry}
        first_inside = _outline_contains(
            outline,
            self._horizon_lonlat(_arc_midpoint(events[0][0], events[1 % count][0])),
        )

        rings: list[tuple[ScreenPoint, ...]] = []
        used: set[int] = set()
        for first in range(len(runs)):
            if first in used:
                continue
            ring: list[ScreenPoint] = []
            idx = first
            while idx not in used:
                used.add(idx)
                run = runs[idx]
                ring.extend(run.points)
                pos = exit_position[idx]
                forward = (pos % 2 == 0) == first_inside
                _, is_entry, target = events[(pos + 1) % count if forward else (pos - 1) % count]
                if not is_entry:
                    # Self-intersecting ring: close this stretch on its own.
                    target = idx
                end = runs[target].entry
                if forward:
                    sweep = (end - run.exit) % _TWO_PI
                else:
                    sweep = -((run.exit - end) % _TWO_PI)
                ring.extend(self._horizon_arc(run.exit, sweep))
                idx = target
            ring.append(ring[0])
            if len(ring) >= 4:
                rings.append(tuple(ring))
        return rings

    def _horizon_angle(self, a: np.ndarray, b: np.ndarray) -> float:
        """Angle around the horizon where the segment a-b crosses it."""
        min_depth = self._min_depth()
        da = float(a[0]) - min_depth
        db = float(b[0]) - min_depth
        s = 0.5 if da == db else da / (da - db)
        chord = a + s * (b - a)
        return math.atan2(float(chord[2]), float(chord[1]))

    def _horizon_point(self, angle: float) -> ScreenPoint:
        radius = self._horizon_radius()
        return self._to_screen_point(radius * math.cos(angle), radius * math.sin(angle))

    def _horizon_lonlat(self, angle: float) -> LonLat:
        radius = self._horizon_radius()
        return self._view_to_lonlat(
            np.array([self._min_depth(), radius * math.cos(angle), radius * math.sin(angle)])
        )

    def _horizon_arc(self, start: float, sweep: float, *, endpoints: bool = False) -> list[ScreenPoint]:
        steps = max(1, int(math.ceil(abs(math.degrees(sweep)) / self.max_segment_deg)))
        indices = range(steps + 1) if endpoints else range(1, steps)
        return [self._horizon_point(start + sweep * idx / steps) for idx in indices]

    def _view_to_lonlat(self, vector: np.ndarray) -> LonLat:
        geo = self._rotation().T @ vector
        lon = math.degrees(math.atan2(geo[1], geo[0]))
        lat = math.degrees(math.asin(max(-1.0, min(float(geo[2]), 1.0))))
        return (lon, lat)

    def _to_screen_point(self, y: float, z: float) -> ScreenPoint:
        tx, ty = self.state.translate
        k = self.state.scale
        return (tx + k * float(y), ty - k * float(z))

    def _min_depth(self) -> float:
        return math.cos(math.radians(self.state.clip_angle))

    def _horizon_radius(self) -> float:
        return math.sin(math.radians(self.state.clip_angle))

    def _rotation(self) -> np.ndarray:
        key = self.state.rotation
        if key != self._matrix_key:
            self._matrix = rotation_matrix(key)
            self._matrix_key = key
        return self._matrix


def _arc_midpoint(start: float, end: float) -> float:
    return start + ((end - start) % _TWO_PI) / 2.0


def _outline_contains(outline: Any, coord: LonLat) -> bool:
    if outline is None:
        return False
    return bool(shapely.contains_xy(outline, coord[0], coord[1]))

"""Near-hemisphere tests for point features."""

from __future__ import annotations

import math
from typing import Any, Iterable

from .models import LonLat, ProjectionState, is_finite_pair
from .projection import GeometryProjector, angular_distance_deg


def great_circle_distance(a: LonLat, b: LonLat) -> float:
    """Haversine angular distance in radians."""
    return math.radians(angular_distance_deg(a, b))


class VisibilityCuller:
    """Decides whether a point sits on the hemisphere facing the viewer.

    Both the angular distance from the view center and the projector's own
    clip test must agree. Near the horizon the two can disagree by a
    rounding error, and requiring both keeps markers from flickering
    between frames.
    """

    def __init__(self, projector: GeometryProjector) -> None:
        self.projector = projector

    def is_visible(self, coord: Any, state: ProjectionState | None = None) -> bool:
        if not is_finite_pair(coord):
            return False
        projector = self.projector
        if state is not None and state is not projector.state:
            projector = projector.with_state(state)
        center = projector.view_center()
        if center is None:
            return False
        lon_lat = (float(coord[0]), float(coord[1]))
        if great_circle_distance(lon_lat, center) >= math.pi / 2.0:
            return False
        return projector.project(lon_lat) is not None

    def visible_mask(self, coords: Iterable[Any]) -> list[bool]:
        return [self.is_visible(coord) for coord in coords]

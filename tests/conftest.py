from __future__ import annotations

import pytest

from caskglobe.models import ProjectionState
from caskglobe.projection import GeometryProjector


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state() -> ProjectionState:
    # 1000x800 viewport, initial scale 800 / 2.5.
    return ProjectionState.for_viewport(
        1000,
        800,
        initial_scale=320.0,
        min_factor=0.25,
        max_factor=8.0,
    )


@pytest.fixture
def projector(state: ProjectionState) -> GeometryProjector:
    return GeometryProjector(state, max_segment_deg=2.0)

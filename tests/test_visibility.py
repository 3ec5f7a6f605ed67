from __future__ import annotations

import math

import pytest

from caskglobe.models import ProjectionState
from caskglobe.projection import GeometryProjector
from caskglobe.visibility import VisibilityCuller, great_circle_distance


@pytest.fixture
def culler(projector: GeometryProjector) -> VisibilityCuller:
    return VisibilityCuller(projector)


class TestGreatCircleDistance:
    def test_quarter_turn(self) -> None:
        assert great_circle_distance((0.0, 0.0), (90.0, 0.0)) == pytest.approx(math.pi / 2.0)

    def test_pole_to_pole(self) -> None:
        assert great_circle_distance((0.0, 90.0), (0.0, -90.0)) == pytest.approx(math.pi)


class TestVisibilityCuller:
    def test_near_side_is_visible(self, culler: VisibilityCuller) -> None:
        assert culler.is_visible((0.0, 0.0))
        assert culler.is_visible((89.0, 0.0))

    def test_far_side_is_hidden(self, culler: VisibilityCuller, projector: GeometryProjector) -> None:
        assert not culler.is_visible((100.0, 0.0))
        assert projector.project((100.0, 0.0)) is None

    def test_horizon_is_hidden(self, culler: VisibilityCuller) -> None:
        assert not culler.is_visible((90.0, 0.0))

    def test_follows_rotation(self, state: ProjectionState, culler: VisibilityCuller) -> None:
        state.rotation_lambda = -180.0
        assert culler.is_visible((180.0, 0.0))
        assert not culler.is_visible((0.0, 0.0))

    def test_explicit_state(self, state: ProjectionState, culler: VisibilityCuller) -> None:
        scratch = state.copy()
        scratch.rotation_phi = -90.0
        assert culler.is_visible((0.0, 80.0), scratch)
        assert not culler.is_visible((0.0, -10.0), scratch)

    def test_invalid_coordinates(self, culler: VisibilityCuller) -> None:
        assert not culler.is_visible((float("nan"), 0.0))
        assert not culler.is_visible(None)

    def test_visible_mask(self, culler: VisibilityCuller) -> None:
        assert culler.visible_mask([(0.0, 0.0), (170.0, 0.0), (-45.0, 45.0)]) == [True, False, True]

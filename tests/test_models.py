from __future__ import annotations

import pytest
from shapely.geometry import Point

from caskglobe.models import (
    FitResult,
    GeographicFeature,
    ProjectionState,
    ScreenBounds,
    ScreenPath,
    is_finite_pair,
)


class TestProjectionState:
    def test_for_viewport_centers_translate(self, state: ProjectionState) -> None:
        assert state.translate == (500.0, 400.0)
        assert state.min_scale == pytest.approx(80.0)
        assert state.max_scale == pytest.approx(2560.0)

    def test_initial_scale_is_clamped(self) -> None:
        state = ProjectionState(
            rotation_lambda=0.0,
            rotation_phi=0.0,
            scale=10_000.0,
            translate=(0.0, 0.0),
            min_scale=10.0,
            max_scale=100.0,
        )
        assert state.scale == 100.0

    def test_rejects_inverted_scale_range(self) -> None:
        with pytest.raises(ValueError):
            ProjectionState(
                rotation_lambda=0.0,
                rotation_phi=0.0,
                scale=50.0,
                translate=(0.0, 0.0),
                min_scale=100.0,
                max_scale=10.0,
            )

    def test_center_negates_rotation(self, state: ProjectionState) -> None:
        state.rotation_lambda = -10.0
        state.rotation_phi = -50.0
        assert state.center == (10.0, 50.0)

    def test_copy_is_independent(self, state: ProjectionState) -> None:
        scratch = state.copy()
        scratch.rotation_lambda = 45.0
        assert state.rotation_lambda == 0.0

    def test_assign_clamps_scale(self, state: ProjectionState) -> None:
        other = state.copy()
        other.max_scale = 1e9
        other.scale = 1e6
        state.assign(other)
        assert state.scale == state.max_scale


class TestGeographicFeature:
    def test_from_geojson_uses_top_level_id(self) -> None:
        feature = GeographicFeature.from_geojson(
            {
                "type": "Feature",
                "id": "FRA",
                "geometry": {"type": "Point", "coordinates": [2.35, 48.85]},
                "properties": {"name": "Paris"},
            }
        )
        assert feature.feature_id == "FRA"
        assert feature.name == "Paris"
        assert feature.geometry.equals(Point(2.35, 48.85))

    def test_from_geojson_with_id_field(self) -> None:
        feature = GeographicFeature.from_geojson(
            {
                "geometry": {"type": "Point", "coordinates": [0, 0]},
                "properties": {"ADM0_A3": "GBR"},
            },
            id_field="ADM0_A3",
        )
        assert feature.feature_id == "GBR"

    def test_from_geojson_requires_geometry(self) -> None:
        with pytest.raises(ValueError):
            GeographicFeature.from_geojson({"properties": {"name": "x"}})

    def test_name_falls_back_to_id(self) -> None:
        feature = GeographicFeature("port-1", Point(0, 0))
        assert feature.name == "port-1"


class TestScreenTypes:
    def test_svg_path(self) -> None:
        path = ScreenPath(parts=(((0.0, 0.0), (1.0, 0.0), (1.0, 1.0)),), closed=True)
        assert path.to_svg(precision=0) == "M0,0L1,0L1,1Z"

    def test_open_svg_path_has_no_close(self) -> None:
        path = ScreenPath(parts=(((0.0, 0.0), (2.0, 2.0)),), closed=False)
        assert path.to_svg(precision=1) == "M0.0,0.0L2.0,2.0"

    def test_bounds_union(self) -> None:
        left = ScreenBounds(0.0, 0.0, 10.0, 10.0)
        right = ScreenBounds(5.0, -5.0, 20.0, 8.0)
        merged = left.union(right)
        assert (merged.x0, merged.y0, merged.x1, merged.y1) == (0.0, -5.0, 20.0, 10.0)
        assert merged.width == 20.0
        assert merged.height == 15.0

    def test_bounds_from_no_points(self) -> None:
        assert ScreenBounds.from_points([]) is None

    def test_fit_result_rotation(self) -> None:
        assert FitResult(center=(10.0, 50.0), scale=640.0).rotation == (-10.0, -50.0, 0.0)


class TestFinitePair:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ((1.0, 2.0), True),
            ([0, 0], True),
            ((float("nan"), 0.0), False),
            ((float("inf"), 0.0), False),
            (None, False),
            ((1.0,), False),
            (("a", "b"), False),
        ],
    )
    def test_values(self, value: object, expected: bool) -> None:
        assert is_finite_pair(value) is expected

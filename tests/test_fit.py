from __future__ import annotations

import pytest
from shapely.geometry import MultiPolygon, Point, Polygon, box

from caskglobe.config import FitConfig
from caskglobe.fit import (
    ZoomFitCalculator,
    explode_polygons,
    first_vertex,
    largest_part,
    representative_anchor,
)
from caskglobe.models import GeographicFeature, ProjectionState
from caskglobe.projection import GeometryProjector


@pytest.fixture
def fitter(projector: GeometryProjector) -> ZoomFitCalculator:
    return ZoomFitCalculator(projector, FitConfig(), initial_scale=320.0)


def _feature(geometry: object, feature_id: str = "f") -> GeographicFeature:
    return GeographicFeature(feature_id, geometry)


class TestCountryFit:
    def test_centers_on_largest_part_centroid(self, fitter: ZoomFitCalculator) -> None:
        fit = fitter.compute_fit([_feature(box(0.0, 0.0, 10.0, 10.0))], 1000, 800)
        assert fit is not None
        assert fit.center == pytest.approx((5.0, 5.0))
        assert fit.rotation == pytest.approx((-5.0, -5.0, 0.0))
        assert 320.0 < fit.scale <= 320.0 * 20.0

    def test_never_zooms_out(self, state: ProjectionState, fitter: ZoomFitCalculator) -> None:
        state.scale = 2000.0
        fit = fitter.compute_fit([_feature(box(-60.0, -50.0, 60.0, 50.0))], 1000, 800)
        assert fit is not None
        assert fit.scale == 2000.0

    def test_zoom_is_capped(self, fitter: ZoomFitCalculator) -> None:
        fit = fitter.compute_fit([_feature(box(0.0, 0.0, 0.01, 0.01))], 1000, 800)
        assert fit is not None
        assert fit.scale == pytest.approx(320.0 * 20.0)

    def test_point_feature_uses_minimum_extent(self, fitter: ZoomFitCalculator) -> None:
        fit = fitter.compute_fit([_feature(Point(3.0, 4.0))], 1000, 800)
        assert fit is not None
        assert fit.center == pytest.approx((3.0, 4.0))
        assert fit.scale == pytest.approx(320.0 * 20.0)

    def test_far_islands_do_not_move_anchor(self, fitter: ZoomFitCalculator) -> None:
        geometry = MultiPolygon([box(0.0, 0.0, 10.0, 10.0), box(50.0, 50.0, 51.0, 51.0)])
        fit = fitter.compute_fit([_feature(geometry)], 1000, 800)
        assert fit is not None
        assert fit.center == pytest.approx((5.0, 5.0))

    def test_live_state_is_untouched(self, state: ProjectionState, fitter: ZoomFitCalculator) -> None:
        before = state.copy()
        fitter.compute_fit([_feature(box(20.0, 20.0, 30.0, 30.0))], 1000, 800)
        assert state == before

    def test_empty_input(self, fitter: ZoomFitCalculator) -> None:
        assert fitter.compute_fit([], 1000, 800) is None

    def test_explicit_margin(self, fitter: ZoomFitCalculator) -> None:
        geometry = box(0.0, 0.0, 10.0, 10.0)
        loose = fitter.compute_fit([_feature(geometry)], 1000, 800, margin_fraction=0.35)
        tight = fitter.compute_fit([_feature(geometry)], 1000, 800)
        assert loose is not None and tight is not None
        assert loose.scale == pytest.approx(tight.scale / 2.0, rel=1e-6)

    def test_unknown_policy(self, fitter: ZoomFitCalculator) -> None:
        with pytest.raises(ValueError):
            fitter.compute_fit([_feature(Point(0.0, 0.0))], 1000, 800, policy="ocean")


class TestRegionFit:
    def test_anchors_on_first_vertex(self, fitter: ZoomFitCalculator) -> None:
        region = Polygon([(2.0, 3.0), (4.0, 3.0), (4.0, 5.0)])
        fit = fitter.compute_fit([_feature(region)], 1000, 800, policy="region")
        assert fit is not None
        assert fit.center == (2.0, 3.0)

    def test_small_region_hits_region_cap(self, fitter: ZoomFitCalculator) -> None:
        region = Polygon([(2.0, 3.0), (2.01, 3.0), (2.01, 3.01)])
        fit = fitter.compute_fit([_feature(region)], 1000, 800, policy="region")
        assert fit is not None
        assert fit.scale == pytest.approx(320.0 * 9.0)

    def test_large_region_gets_floor(self, fitter: ZoomFitCalculator) -> None:
        region = box(-40.0, -40.0, 40.0, 40.0)
        fit = fitter.compute_fit([_feature(region)], 1000, 800, policy="region")
        assert fit is not None
        assert fit.scale == pytest.approx(320.0 * 3.5)


class TestGeometryHelpers:
    def test_explode(self) -> None:
        geometry = MultiPolygon([box(0, 0, 1, 1), box(2, 2, 3, 3)])
        assert len(explode_polygons(geometry)) == 2
        assert explode_polygons(Point(0, 0)) == []

    def test_largest_part(self) -> None:
        big = box(0, 0, 5, 5)
        assert largest_part(MultiPolygon([box(10, 10, 11, 11), big])).equals(big)

    def test_representative_anchor_of_empty(self) -> None:
        assert representative_anchor(Polygon()) is None

    def test_first_vertex_of_point(self) -> None:
        assert first_vertex(Point(7.0, 8.0)) == (7.0, 8.0)

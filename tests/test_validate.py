from __future__ import annotations

import logging

import pytest
from shapely.geometry import LineString, Point, Polygon, box

from caskglobe.models import GeographicFeature
from caskglobe.validate import FeatureValidator, check_geometry, format_report_lines


class TestCheckGeometry:
    def test_valid(self) -> None:
        assert check_geometry(box(0, 0, 1, 1)) is None
        assert check_geometry(LineString([(0, 0), (10, 10)])) is None

    @pytest.mark.parametrize(
        "geometry, reason",
        [
            (None, "missing geometry"),
            ("POINT (0 0)", "unsupported geometry object str"),
            (Polygon(), "empty geometry"),
            (Point(float("nan"), 0.0), "non-finite coordinates"),
            (Point(0.0, 91.0), "latitude outside [-90, 90]"),
        ],
    )
    def test_problems(self, geometry: object, reason: str) -> None:
        assert check_geometry(geometry) == reason


class TestFeatureValidator:
    def test_keeps_valid_and_reports_skips(self, caplog: pytest.LogCaptureFixture) -> None:
        features = [
            GeographicFeature("a", Point(0, 0)),
            GeographicFeature("b", Point(0, -100)),
            GeographicFeature("a", Point(1, 1)),
            "not a feature",
        ]
        with caplog.at_level(logging.WARNING, logger="caskglobe.validate"):
            valid, report = FeatureValidator().run(features, layer="ports")  # type: ignore[arg-type]
        assert [feature.feature_id for feature in valid] == ["a"]
        assert len(report.warnings) == 3
        assert report.ok
        assert report.infos == ["[ports] Accepted 1 features"]
        assert "duplicate feature id" in caplog.text

    def test_format_lines(self) -> None:
        _, report = FeatureValidator().run([GeographicFeature("x", Point(0, 95))])
        lines = format_report_lines(report)
        assert lines[0] == "[INFO] Accepted 0 features"
        assert lines[1].startswith("[WARN] Skipping feature 'x'")
        assert lines[-1] == "[OK] Feature validation completed with no errors."

    def test_errors_suppress_ok_line(self) -> None:
        _, report = FeatureValidator().run([])
        report.add_error("broken")
        assert format_report_lines(report)[-1] == "[ERROR] broken"

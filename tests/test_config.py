from __future__ import annotations

from pathlib import Path

import pytest

from caskglobe.config import GlobeConfig, LabelsConfig, load_config


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_built_in_values(self) -> None:
        cfg = GlobeConfig.default()
        assert cfg.viewport.initial_scale == pytest.approx(320.0)
        assert cfg.zoom.min_factor == 0.25
        assert cfg.zoom.max_factor == 8.0
        assert cfg.drag.sensitivity == 75.0
        assert cfg.animation.duration_s == 1.0
        assert cfg.animation.easing == "cubic_in_out"
        assert cfg.render.settle_delay_s == 0.15
        assert cfg.labels.min_scale_factor == 2.5
        assert cfg.layers.gate_for("distilleries") == 3.0
        assert cfg.layers.gate_for("countries") == 0.0

    def test_fit_policies(self) -> None:
        cfg = GlobeConfig.default()
        assert cfg.fit.policy("country").anchor == "centroid"
        region = cfg.fit.policy("region")
        assert region.anchor == "first_vertex"
        assert region.min_scale_factor == 3.5
        assert region.max_scale_factor == 9.0

    def test_default_offsets_start_north_east(self) -> None:
        assert LabelsConfig().offsets_px[0] == (16, -14)
        assert len(LabelsConfig().offsets_px) == 8


class TestLoadConfig:
    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, ""))
        assert cfg.viewport == GlobeConfig.default().viewport
        assert cfg.source_path == (tmp_path / "config.yaml").resolve()

    def test_overrides(self, tmp_path: Path) -> None:
        cfg = load_config(
            _write(
                tmp_path,
                """
viewport:
  width_px: 1280
  height_px: 720
animation:
  easing: linear
labels:
  offsets_px: [[10, 0], [-10, 0]]
layers:
  ports:
    min_scale_factor: 4
fit:
  country:
    margin_fraction: 0.5
""",
            )
        )
        assert cfg.viewport.initial_scale == pytest.approx(288.0)
        assert cfg.animation.easing == "linear"
        assert cfg.labels.offsets_px == ((10, 0), (-10, 0))
        assert cfg.layers.gate_for("ports") == 4.0
        assert cfg.layers.gate_for("distilleries") == 3.0
        assert cfg.fit.policy("country").margin_fraction == 0.5
        assert cfg.fit.policy("region").anchor == "first_vertex"

    def test_shipped_config_loads(self) -> None:
        path = Path(__file__).resolve().parents[1] / "config.yaml"
        cfg = load_config(path)
        assert cfg.fit.policy("region").min_absolute_scale == 100.0
        assert cfg.labels.offsets_px == LabelsConfig().offsets_px

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize(
        "text",
        [
            "- just\n- a list\n",
            "viewport: 3\n",
            "viewport:\n  width_px: wide\n",
            "viewport:\n  height_px: 0\n",
            "animation:\n  easing: bounce\n",
            "zoom:\n  min_factor: 9\n  max_factor: 8\n",
            "labels:\n  offsets_px: []\n",
            "fit:\n  country:\n    margin_fraction: 1.5\n",
            "fit:\n  country:\n    anchor: middle\n",
            "render:\n  settle_delay_s: -1\n",
            "layers:\n  ports:\n    min_scale_factor: -2\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, text))

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            GlobeConfig.default().fit.policy("ocean")

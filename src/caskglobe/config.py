"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


_EASINGS = ("linear", "quad_in_out", "cubic_in_out", "sin_in_out")
_ANCHORS = ("centroid", "first_vertex")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(raw: Mapping[str, Any], key: str, field_name: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Expected float for '{field_name}'")
    if isinstance(value, (int, float)):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _positive(value: float, field_name: str) -> float:
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return value


def _choice(value: Any, field_name: str, allowed: tuple[str, ...]) -> str:
    chosen = _str(value, field_name).casefold()
    if chosen not in allowed:
        raise ValueError(f"{field_name} must be one of: " + ", ".join(allowed))
    return chosen


@dataclass(frozen=True, slots=True)
class ViewportConfig:
    width_px: int = 1000
    height_px: int = 800
    initial_scale_divisor: float = 2.5

    @property
    def initial_scale(self) -> float:
        return self.height_px / self.initial_scale_divisor

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewportConfig:
        defaults = cls()
        width_px = _int(raw.get("width_px", defaults.width_px), "viewport.width_px")
        height_px = _int(raw.get("height_px", defaults.height_px), "viewport.height_px")
        if width_px <= 0 or height_px <= 0:
            raise ValueError("viewport.width_px and viewport.height_px must be > 0")
        return cls(
            width_px=width_px,
            height_px=height_px,
            initial_scale_divisor=_positive(
                _float(
                    raw.get("initial_scale_divisor", defaults.initial_scale_divisor),
                    "viewport.initial_scale_divisor",
                ),
                "viewport.initial_scale_divisor",
            ),
        )


@dataclass(frozen=True, slots=True)
class ZoomConfig:
    min_factor: float = 0.25
    max_factor: float = 8.0
    button_in: float = 1.2
    button_out: float = 0.8
    button_duration_s: float = 0.2

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ZoomConfig:
        defaults = cls()
        min_factor = _positive(
            _float(raw.get("min_factor", defaults.min_factor), "zoom.min_factor"),
            "zoom.min_factor",
        )
        max_factor = _positive(
            _float(raw.get("max_factor", defaults.max_factor), "zoom.max_factor"),
            "zoom.max_factor",
        )
        if min_factor > max_factor:
            raise ValueError("zoom.min_factor cannot be greater than zoom.max_factor")
        return cls(
            min_factor=min_factor,
            max_factor=max_factor,
            button_in=_positive(
                _float(raw.get("button_in", defaults.button_in), "zoom.button_in"),
                "zoom.button_in",
            ),
            button_out=_positive(
                _float(raw.get("button_out", defaults.button_out), "zoom.button_out"),
                "zoom.button_out",
            ),
            button_duration_s=_positive(
                _float(
                    raw.get("button_duration_s", defaults.button_duration_s),
                    "zoom.button_duration_s",
                ),
                "zoom.button_duration_s",
            ),
        )


@dataclass(frozen=True, slots=True)
class DragConfig:
    sensitivity: float = 75.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> DragConfig:
        return cls(
            sensitivity=_positive(
                _float(raw.get("sensitivity", cls().sensitivity), "drag.sensitivity"),
                "drag.sensitivity",
            )
        )


@dataclass(frozen=True, slots=True)
class AnimationConfig:
    duration_s: float = 1.0
    easing: str = "cubic_in_out"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AnimationConfig:
        defaults = cls()
        return cls(
            duration_s=_positive(
                _float(raw.get("duration_s", defaults.duration_s), "animation.duration_s"),
                "animation.duration_s",
            ),
            easing=_choice(raw.get("easing", defaults.easing), "animation.easing", _EASINGS),
        )


@dataclass(frozen=True, slots=True)
class ProjectionConfig:
    max_segment_deg: float = 2.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectionConfig:
        return cls(
            max_segment_deg=_positive(
                _float(
                    raw.get("max_segment_deg", cls().max_segment_deg),
                    "projection.max_segment_deg",
                ),
                "projection.max_segment_deg",
            )
        )


@dataclass(frozen=True, slots=True)
class FitPolicyConfig:
    """Zoom-to-fit tuning for one kind of target."""

    margin_fraction: float = 0.7
    max_zoom_multiplier: float = 20.0
    min_absolute_scale: float = 50.0
    # Optional bounds relative to the initial scale.
    min_scale_factor: float | None = None
    max_scale_factor: float | None = None
    anchor: str = "centroid"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], section: str) -> FitPolicyConfig:
        defaults = cls()
        margin = _float(raw.get("margin_fraction", defaults.margin_fraction), f"{section}.margin_fraction")
        if not 0.0 < margin <= 1.0:
            raise ValueError(f"{section}.margin_fraction must be in (0, 1]")
        multiplier = _float(
            raw.get("max_zoom_multiplier", defaults.max_zoom_multiplier),
            f"{section}.max_zoom_multiplier",
        )
        if multiplier < 1.0:
            raise ValueError(f"{section}.max_zoom_multiplier must be >= 1")
        min_factor_raw = raw.get("min_scale_factor")
        max_factor_raw = raw.get("max_scale_factor")
        return cls(
            margin_fraction=margin,
            max_zoom_multiplier=multiplier,
            min_absolute_scale=_float(
                raw.get("min_absolute_scale", defaults.min_absolute_scale),
                f"{section}.min_absolute_scale",
            ),
            min_scale_factor=(
                None
                if min_factor_raw is None
                else _positive(_float(min_factor_raw, f"{section}.min_scale_factor"), f"{section}.min_scale_factor")
            ),
            max_scale_factor=(
                None
                if max_factor_raw is None
                else _positive(_float(max_factor_raw, f"{section}.max_scale_factor"), f"{section}.max_scale_factor")
            ),
            anchor=_choice(raw.get("anchor", defaults.anchor), f"{section}.anchor", _ANCHORS),
        )


def _default_fit_policies() -> dict[str, FitPolicyConfig]:
    return {
        "country": FitPolicyConfig(),
        "region": FitPolicyConfig(
            min_absolute_scale=100.0,
            min_scale_factor=3.5,
            max_scale_factor=9.0,
            anchor="first_vertex",
        ),
    }


@dataclass(frozen=True, slots=True)
class FitConfig:
    policies: Mapping[str, FitPolicyConfig] = field(default_factory=_default_fit_policies)

    def policy(self, name: str) -> FitPolicyConfig:
        try:
            return self.policies[name]
        except KeyError:
            raise ValueError(f"Unknown fit policy '{name}'") from None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FitConfig:
        policies = _default_fit_policies()
        for name, value in raw.items():
            if not isinstance(name, str) or not name.strip():
                raise ValueError("fit policy names must be non-empty strings")
            policies[name] = FitPolicyConfig.from_mapping(_mapping(value, f"fit.{name}"), f"fit.{name}")
        return cls(policies=policies)


_DEFAULT_OFFSETS: tuple[tuple[int, int], ...] = (
    (16, -14),
    (16, 14),
    (-16, -14),
    (-16, 14),
    (0, -18),
    (0, 18),
    (20, 0),
    (-20, 0),
)


@dataclass(frozen=True, slots=True)
class LabelsConfig:
    offsets_px: tuple[tuple[int, int], ...] = _DEFAULT_OFFSETS
    distance_weight: float = 0.15
    collision_padding_px: int = 0
    min_scale_factor: float = 2.5

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LabelsConfig:
        defaults = cls()
        offsets_raw = raw.get("offsets_px")
        offsets: tuple[tuple[int, int], ...] = defaults.offsets_px
        if offsets_raw is not None:
            if not isinstance(offsets_raw, list) or not offsets_raw:
                raise ValueError("Expected non-empty list for 'labels.offsets_px'")
            parsed: list[tuple[int, int]] = []
            for idx, item in enumerate(offsets_raw):
                if not isinstance(item, list) or len(item) != 2:
                    raise ValueError(f"Invalid labels.offsets_px[{idx}]")
                dx = _int(item[0], f"labels.offsets_px[{idx}][0]")
                dy = _int(item[1], f"labels.offsets_px[{idx}][1]")
                parsed.append((dx, dy))
            offsets = tuple(parsed)
        padding = _int(
            raw.get("collision_padding_px", defaults.collision_padding_px),
            "labels.collision_padding_px",
        )
        if padding < 0:
            raise ValueError("labels.collision_padding_px must be >= 0")
        weight = _float(raw.get("distance_weight", defaults.distance_weight), "labels.distance_weight")
        if weight < 0:
            raise ValueError("labels.distance_weight must be >= 0")
        return cls(
            offsets_px=offsets,
            distance_weight=weight,
            collision_padding_px=padding,
            min_scale_factor=_float(
                raw.get("min_scale_factor", defaults.min_scale_factor),
                "labels.min_scale_factor",
            ),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    settle_delay_s: float = 0.15

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        delay = _float(raw.get("settle_delay_s", cls().settle_delay_s), "render.settle_delay_s")
        if delay < 0:
            raise ValueError("render.settle_delay_s must be >= 0")
        return cls(settle_delay_s=delay)


def _default_layer_gates() -> dict[str, float]:
    return {"wine_regions": 2.5, "ports": 2.5, "distilleries": 3.0}


@dataclass(frozen=True, slots=True)
class LayersConfig:
    """Zoom gates per layer name, as multiples of the initial scale."""

    min_scale_factors: Mapping[str, float] = field(default_factory=_default_layer_gates)

    def gate_for(self, name: str) -> float:
        return float(self.min_scale_factors.get(name, 0.0))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LayersConfig:
        gates = _default_layer_gates()
        for name, value in raw.items():
            if not isinstance(name, str) or not name.strip():
                raise ValueError("layer names must be non-empty strings")
            section = _mapping(value, f"layers.{name}")
            gate = _float(section.get("min_scale_factor", 0.0), f"layers.{name}.min_scale_factor")
            if gate < 0:
                raise ValueError(f"layers.{name}.min_scale_factor must be >= 0")
            gates[name] = gate
        return cls(min_scale_factors=gates)


@dataclass(frozen=True, slots=True)
class GlobeConfig:
    viewport: ViewportConfig = field(default_factory=ViewportConfig)
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    drag: DragConfig = field(default_factory=DragConfig)
    animation: AnimationConfig = field(default_factory=AnimationConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    fit: FitConfig = field(default_factory=FitConfig)
    labels: LabelsConfig = field(default_factory=LabelsConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    layers: LayersConfig = field(default_factory=LayersConfig)
    source_path: Path | None = None

    @classmethod
    def default(cls) -> GlobeConfig:
        return cls()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path | None = None) -> GlobeConfig:
        return cls(
            viewport=ViewportConfig.from_mapping(_optional_mapping(raw, "viewport", "viewport")),
            zoom=ZoomConfig.from_mapping(_optional_mapping(raw, "zoom", "zoom")),
            drag=DragConfig.from_mapping(_optional_mapping(raw, "drag", "drag")),
            animation=AnimationConfig.from_mapping(_optional_mapping(raw, "animation", "animation")),
            projection=ProjectionConfig.from_mapping(_optional_mapping(raw, "projection", "projection")),
            fit=FitConfig.from_mapping(_optional_mapping(raw, "fit", "fit")),
            labels=LabelsConfig.from_mapping(_optional_mapping(raw, "labels", "labels")),
            render=RenderConfig.from_mapping(_optional_mapping(raw, "render", "render")),
            layers=LayersConfig.from_mapping(_optional_mapping(raw, "layers", "layers")),
            source_path=source_path.resolve() if source_path is not None else None,
        )


def load_config(path: str | Path) -> GlobeConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return GlobeConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)

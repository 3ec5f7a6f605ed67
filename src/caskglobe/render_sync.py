"""Dependency-ordered redraw passes over the registered layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from .config import LabelsConfig
from .fit import representative_anchor
from .labels import LabelPlacer
from .models import (
    GeographicFeature,
    LabelCandidate,
    LonLat,
    PlacedLabel,
    ProjectionState,
    ScreenPath,
    ScreenPoint,
)
from .projection import GeometryProjector, point_coords
from .validate import FeatureValidator, ValidationReport, format_report_lines
from .visibility import VisibilityCuller


_LOGGER = logging.getLogger("caskglobe.render_sync")

LAYER_KINDS = ("sphere", "polygon", "line", "point")
SPHERE_KEY = "__sphere__"

LabelSize = Callable[[GeographicFeature], tuple[float, float]]
Subscriber = Callable[["FrameSnapshot"], None]


def estimate_label_size(text: str, font_px: float = 10.0) -> tuple[float, float]:
    """Rough text box for a label when the host cannot measure it."""
    return (max(1.0, 0.6 * font_px * len(text)), 1.4 * font_px)


def _default_label_size(feature: GeographicFeature) -> tuple[float, float]:
    return estimate_label_size(feature.name)


@dataclass(slots=True)
class Layer:
    name: str
    kind: str
    features: tuple[GeographicFeature, ...] = ()
    min_scale_factor: float = 0.0
    cheap: bool = False
    labelled: bool = False
    forced: bool = False
    label_size: LabelSize = _default_label_size
    # Label priority order; registration order when None.
    label_order: Callable[[GeographicFeature], Any] | None = None


@dataclass(slots=True)
class FrameReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    hidden: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


@dataclass(slots=True)
class FrameSnapshot:
    """Everything one pass produced, keyed by layer name then feature id.

    Points map to None when the feature sits on the far side of the globe.
    """

    generation: int
    full: bool
    state: ProjectionState
    paths: dict[str, dict[str, ScreenPath]] = field(default_factory=dict)
    points: dict[str, dict[str, ScreenPoint | None]] = field(default_factory=dict)
    labels: dict[str, dict[str, PlacedLabel]] = field(default_factory=dict)
    report: FrameReport = field(default_factory=FrameReport)

    @property
    def sphere(self) -> ScreenPath | None:
        for layer_paths in self.paths.values():
            path = layer_paths.get(SPHERE_KEY)
            if path is not None:
                return path
        return None

    def visible_points(self, layer: str) -> dict[str, ScreenPoint]:
        return {fid: point for fid, point in self.points.get(layer, {}).items() if point is not None}


class RenderSync:
    """Runs redraw passes in a fixed order and fans the result out.

    Order is sphere, polygons, lines, points, then labels. Inside one kind
    layers keep their registration order. A reduced pass, used while a
    gesture is in progress, only touches layers flagged `cheap`.
    """

    def __init__(
        self,
        projector: GeometryProjector,
        culler: VisibilityCuller,
        placer: LabelPlacer,
        *,
        initial_scale: float,
        labels_cfg: LabelsConfig | None = None,
        validator: FeatureValidator | None = None,
    ) -> None:
        self.projector = projector
        self.culler = culler
        self.placer = placer
        self.initial_scale = initial_scale
        self.labels_cfg = labels_cfg if labels_cfg is not None else LabelsConfig()
        self.validator = validator if validator is not None else FeatureValidator()
        self._layers: dict[str, Layer] = {}
        self._subscribers: list[Subscriber] = []
        self._generation = 0
        self._in_pass = False
        self._last: FrameSnapshot | None = None

    @property
    def layers(self) -> Sequence[Layer]:
        return tuple(self._layers.values())

    @property
    def last_frame(self) -> FrameSnapshot | None:
        return self._last

    def layer(self, name: str) -> Layer:
        try:
            return self._layers[name]
        except KeyError as exc:
            raise KeyError(f"Unknown layer '{name}'") from exc

    def register_layer(
        self,
        name: str,
        kind: str,
        features: Iterable[GeographicFeature] = (),
        *,
        min_scale_factor: float = 0.0,
        cheap: bool = False,
        labelled: bool = False,
        forced: bool = False,
        label_size: LabelSize | None = None,
        label_order: Callable[[GeographicFeature], Any] | None = None,
    ) -> ValidationReport:
        if kind not in LAYER_KINDS:
            raise ValueError(f"Unsupported layer kind '{kind}', expected one of {', '.join(LAYER_KINDS)}")
        if not name:
            raise ValueError("Layer name must be non-empty")
        valid, report = self.validator.run(features, layer=name)
        self._layers[name] = Layer(
            name=name,
            kind=kind,
            features=tuple(valid),
            min_scale_factor=float(min_scale_factor),
            cheap=cheap,
            labelled=labelled,
            forced=forced,
            label_size=label_size if label_size is not None else _default_label_size,
            label_order=label_order,
        )
        for line in format_report_lines(report):
            _LOGGER.debug(line)
        return report

    def set_features(self, name: str, features: Iterable[GeographicFeature]) -> ValidationReport:
        """Swap a layer's features, e.g. after a filter change."""
        layer = self.layer(name)
        valid, report = self.validator.run(features, layer=name)
        previous = layer.features
        layer.features = tuple(valid)
        self._release(previous)
        return report

    def remove_layer(self, name: str) -> None:
        layer = self._layers.pop(name, None)
        if layer is not None:
            self._release(layer.features)

    def set_forced(self, name: str, forced: bool) -> None:
        self.layer(name).forced = forced

    def layer_gate_open(self, name: str) -> bool:
        layer = self.layer(name)
        if layer.forced:
            return True
        return self.projector.state.scale >= self.initial_scale * layer.min_scale_factor

    def labels_enabled(self) -> bool:
        return self.projector.state.scale >= self.initial_scale * self.labels_cfg.min_scale_factor

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_state_change(self, full: bool | None = None) -> FrameSnapshot:
        if self._in_pass:
            raise RuntimeError("Projection state changed from inside a redraw pass")
        full_pass = True if full is None else bool(full)
        self._in_pass = True
        try:
            snapshot = self._run_pass(full_pass)
            self._last = snapshot
            self._publish(snapshot)
        finally:
            self._in_pass = False
        return snapshot

    def _run_pass(self, full: bool) -> FrameSnapshot:
        self._generation += 1
        snapshot = FrameSnapshot(
            generation=self._generation,
            full=full,
            state=self.projector.state.copy(),
        )
        report = snapshot.report
        memo: dict[int, ScreenPath | None] = {}
        for kind in LAYER_KINDS:
            for layer in self._layers.values():
                if layer.kind != kind:
                    continue
                if not full and not layer.cheap:
                    report.deferred.append(layer.name)
                    continue
                if not self.layer_gate_open(layer.name):
                    report.hidden.append(layer.name)
                    continue
                try:
                    self._update_layer(layer, snapshot, memo)
                    report.updated.append(layer.name)
                except Exception as exc:
                    report.add_error(f"Layer '{layer.name}' failed: {exc}")
                    _LOGGER.warning("Layer '%s' update failed: %s", layer.name, exc)

        if not full:
            report.deferred.append("labels")
        elif self.labels_enabled():
            try:
                self._place_labels(snapshot)
                report.updated.append("labels")
            except Exception as exc:
                report.add_error(f"Label placement failed: {exc}")
                _LOGGER.warning("Label placement failed: %s", exc)
        else:
            report.hidden.append("labels")

        _LOGGER.debug(
            "Pass #%d (%s): updated=%d deferred=%d hidden=%d errors=%d",
            snapshot.generation,
            "full" if full else "reduced",
            len(report.updated),
            len(report.deferred),
            len(report.hidden),
            len(report.errors),
        )
        return snapshot

    def _update_layer(
        self,
        layer: Layer,
        snapshot: FrameSnapshot,
        memo: dict[int, ScreenPath | None],
    ) -> None:
        if layer.kind == "sphere":
            snapshot.paths[layer.name] = {SPHERE_KEY: self.projector.sphere_path()}
            return
        if layer.kind == "point":
            snapshot.points[layer.name] = self._project_points(layer, snapshot.report)
            return

        paths: dict[str, ScreenPath] = {}
        for feature in layer.features:
            key = id(feature.geometry)
            if key not in memo:
                try:
                    memo[key] = self.projector.project_path(feature.geometry)
                except Exception as exc:
                    memo[key] = None
                    snapshot.report.add_warning(
                        f"[{layer.name}] Feature '{feature.feature_id}' could not be projected: {exc}"
                    )
            path = memo[key]
            if path is not None:
                paths[feature.feature_id] = path
        snapshot.paths[layer.name] = paths

    def _project_points(self, layer: Layer, report: FrameReport) -> dict[str, ScreenPoint | None]:
        out: dict[str, ScreenPoint | None] = {}
        for feature in layer.features:
            coord = feature_anchor(feature)
            if coord is None:
                report.add_warning(f"[{layer.name}] Feature '{feature.feature_id}' has no anchor point")
                out[feature.feature_id] = None
                continue
            out[feature.feature_id] = (
                self.projector.project(coord) if self.culler.is_visible(coord) else None
            )
        return out

    def _place_labels(self, snapshot: FrameSnapshot) -> None:
        candidates: list[LabelCandidate] = []
        owners: list[str] = []
        for layer in self._layers.values():
            if not layer.labelled or layer.kind != "point":
                continue
            points = snapshot.points.get(layer.name)
            if points is None:
                continue
            features: Sequence[GeographicFeature] = layer.features
            if layer.label_order is not None:
                features = sorted(features, key=layer.label_order)
            for feature in features:
                candidates.append(
                    LabelCandidate(
                        key=feature.feature_id,
                        anchor=points.get(feature.feature_id),
                        size=layer.label_size(feature),
                    )
                )
                owners.append(layer.name)

        placed, _ = self.placer.place_labels(candidates)
        for label in placed:
            snapshot.labels.setdefault(owners[label.source_index], {})[label.key] = label

    def _release(self, features: Iterable[GeographicFeature]) -> None:
        """Evict prepared geometry no registered layer still draws."""
        held = {id(feature.geometry) for layer in self._layers.values() for feature in layer.features}
        stale = [feature.geometry for feature in features if id(feature.geometry) not in held]
        dropped = self.projector.forget(stale)
        if dropped:
            _LOGGER.debug("Released %d prepared geometries", dropped)

    def _publish(self, snapshot: FrameSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:
                snapshot.report.add_warning(f"Subscriber failed: {exc}")
                _LOGGER.warning("Frame subscriber %r failed: %s", callback, exc)


def feature_anchor(feature: GeographicFeature) -> LonLat | None:
    """Marker position: the point itself, or the main part's centroid."""
    points = point_coords(feature.geometry)
    if points:
        return points[0]
    return representative_anchor(feature.geometry)


def format_frame_lines(report: FrameReport) -> Sequence[str]:
    lines: list[str] = []
    lines.append(
        "[INFO] Layers updated: "
        + (", ".join(report.updated) if report.updated else "none")
    )
    if report.deferred:
        lines.append("[INFO] Deferred until settle: " + ", ".join(report.deferred))
    if report.hidden:
        lines.append("[INFO] Hidden below zoom gate: " + ", ".join(report.hidden))
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Redraw pass completed with no errors.")
    return lines

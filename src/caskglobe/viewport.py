"""The viewport facade the UI layer talks to."""

from __future__ import annotations

import logging
import math
import time
from functools import lru_cache
from typing import Any, Callable, Iterable, Sequence

from .animation import Clock, SettleTimer, ViewportAnimator
from .config import GlobeConfig
from .fit import ZoomFitCalculator
from .labels import LabelPlacer
from .models import (
    FitResult,
    GeographicFeature,
    LonLat,
    ProjectionState,
    ScreenBounds,
    ScreenPoint,
)
from .projection import GeometryProjector
from .render_sync import FrameSnapshot, LabelSize, RenderSync, Subscriber
from .validate import ValidationReport
from .visibility import VisibilityCuller


_LOGGER = logging.getLogger("caskglobe.viewport")


class GlobeViewport:
    """Owns the projection state and routes every input that may change it.

    Gestures (drag, wheel) write the state immediately and trigger reduced
    passes; the settle timer schedules the full pass once input has been
    quiet for the configured delay. Programmatic moves are tweened by the
    animator and advanced from `tick`, which the host calls once per frame.
    """

    def __init__(
        self,
        cfg: GlobeConfig | None = None,
        *,
        width: float | None = None,
        height: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.cfg = cfg if cfg is not None else GlobeConfig.default()
        self.clock = clock
        self.width = float(width if width is not None else self.cfg.viewport.width_px)
        self.height = float(height if height is not None else self.cfg.viewport.height_px)
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Viewport size must be positive, got {self.width}x{self.height}")
        self.initial_scale = self.height / self.cfg.viewport.initial_scale_divisor

        self.state = ProjectionState.for_viewport(
            self.width,
            self.height,
            initial_scale=self.initial_scale,
            min_factor=self.cfg.zoom.min_factor,
            max_factor=self.cfg.zoom.max_factor,
        )
        self.projector = GeometryProjector(
            self.state,
            max_segment_deg=self.cfg.projection.max_segment_deg,
        )
        self.culler = VisibilityCuller(self.projector)
        self.placer = LabelPlacer(self.cfg.labels)
        self.render_sync = RenderSync(
            self.projector,
            self.culler,
            self.placer,
            initial_scale=self.initial_scale,
            labels_cfg=self.cfg.labels,
        )
        self.fitter = ZoomFitCalculator(self.projector, self.cfg.fit, initial_scale=self.initial_scale)
        self.animator = ViewportAnimator(
            self.state,
            animation=self.cfg.animation,
            drag=self.cfg.drag,
            zoom=self.cfg.zoom,
            redraw=self._redraw,
            clock=clock,
        )
        self.settle = SettleTimer(self.cfg.render.settle_delay_s, clock=clock)
        self._dragging = False

    # Layers

    def add_layer(
        self,
        name: str,
        kind: str,
        features: Iterable[GeographicFeature] = (),
        *,
        min_scale_factor: float | None = None,
        cheap: bool = False,
        labelled: bool = False,
        forced: bool = False,
        label_size: LabelSize | None = None,
        label_order: Callable[[GeographicFeature], Any] | None = None,
    ) -> ValidationReport:
        gate = self.cfg.layers.gate_for(name) if min_scale_factor is None else min_scale_factor
        return self.render_sync.register_layer(
            name,
            kind,
            features,
            min_scale_factor=gate,
            cheap=cheap,
            labelled=labelled,
            forced=forced,
            label_size=label_size,
            label_order=label_order,
        )

    def set_layer_features(self, name: str, features: Iterable[GeographicFeature]) -> ValidationReport:
        return self.render_sync.set_features(name, features)

    def set_layer_forced(self, name: str, forced: bool) -> None:
        self.render_sync.set_forced(name, forced)

    def layer_visible(self, name: str) -> bool:
        return self.render_sync.layer_gate_open(name)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.render_sync.subscribe(callback)

    def redraw(self) -> FrameSnapshot:
        return self.render_sync.on_state_change(full=True)

    @property
    def last_frame(self) -> FrameSnapshot | None:
        return self.render_sync.last_frame

    # Gestures

    def drag_start(self) -> None:
        self._dragging = True
        self.settle.cancel()

    def drag(self, dx: float, dy: float) -> bool:
        return self.animator.drag_step(dx, dy)

    def drag_end(self, now: float | None = None) -> None:
        self._dragging = False
        self.settle.reset(now)

    def wheel_zoom(self, new_scale: float, anchor: Any = None, *, now: float | None = None) -> bool:
        changed = self.animator.zoom_step(new_scale, anchor)
        if changed:
            self.settle.reset(now)
        return changed

    def zoom_end(self, now: float | None = None) -> None:
        self.settle.reset(now)

    def zoom_in(self, *, now: float | None = None) -> int:
        return self.animator.zoom_by(self.cfg.zoom.button_in, now=now)

    def zoom_out(self, *, now: float | None = None) -> int:
        return self.animator.zoom_by(self.cfg.zoom.button_out, now=now)

    # Programmatic navigation

    def rotate_to(
        self,
        target: LonLat,
        scale: float | None = None,
        on_complete: Callable[[], None] | None = None,
        *,
        duration: float | None = None,
        now: float | None = None,
    ) -> int:
        return self.animator.rotate_to(target, scale, on_complete, duration=duration, now=now)

    def zoom_to_features(
        self,
        features: Sequence[GeographicFeature],
        policy: str = "country",
        on_complete: Callable[[], None] | None = None,
        *,
        now: float | None = None,
    ) -> FitResult | None:
        fit = self.fitter.compute_fit(features, self.width, self.height, policy=policy)
        if fit is None:
            _LOGGER.info("Zoom-to ignored: nothing to fit")
            return None
        self.animator.rotate_to(fit.center, fit.scale, on_complete, now=now)
        return fit

    def zoom_to_region(
        self,
        feature: GeographicFeature,
        on_complete: Callable[[], None] | None = None,
        *,
        now: float | None = None,
    ) -> FitResult | None:
        return self.zoom_to_features([feature], policy="region", on_complete=on_complete, now=now)

    def reset_view(self, *, now: float | None = None) -> int:
        return self.animator.rotate_to((0.0, 0.0), self.initial_scale, now=now)

    def resize(self, width: float, height: float) -> FrameSnapshot:
        if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
            raise ValueError(f"Viewport size must be positive, got {width}x{height}")
        self.animator.cancel()
        self.settle.cancel()
        self.width = float(width)
        self.height = float(height)
        self.initial_scale = self.height / self.cfg.viewport.initial_scale_divisor
        self.state.translate = (self.width / 2.0, self.height / 2.0)
        self.state.min_scale = self.initial_scale * self.cfg.zoom.min_factor
        self.state.max_scale = self.initial_scale * self.cfg.zoom.max_factor
        self.state.scale = self.initial_scale
        self.render_sync.initial_scale = self.initial_scale
        self.fitter.initial_scale = self.initial_scale
        _LOGGER.debug("Resized to %.0fx%.0f, initial scale %.1f", self.width, self.height, self.initial_scale)
        return self.render_sync.on_state_change(full=True)

    # Frame loop

    def tick(self, now: float | None = None) -> bool:
        """Advance animations and timers; True while more frames are needed."""
        current = self.clock() if now is None else now
        animating = self.animator.tick(current)
        if self.settle.poll(current) and not self._dragging:
            self.render_sync.on_state_change(full=True)
        return animating or self.settle.pending

    # Queries

    def project(self, coord: Any) -> ScreenPoint | None:
        return self.projector.project(coord)

    def invert(self, point: Any) -> LonLat | None:
        return self.projector.invert(point)

    def bounds(self, items: Any) -> ScreenBounds | None:
        return self.projector.bounds(items)

    def is_visible(self, coord: Any) -> bool:
        return self.culler.is_visible(coord)

    def feature_at(self, point: Any, layer: str | None = None) -> GeographicFeature | None:
        """Topmost polygon feature under a screen point, for click-to-zoom."""
        coord = self.projector.invert(point)
        if coord is None:
            return None
        location = _require_shapely_point_factory()(coord[0], coord[1])
        layers = [item for item in self.render_sync.layers if item.kind == "polygon"]
        if layer is not None:
            layers = [item for item in layers if item.name == layer]
        for candidate_layer in reversed(layers):
            if not self.render_sync.layer_gate_open(candidate_layer.name):
                continue
            for feature in candidate_layer.features:
                if feature.geometry.covers(location):
                    return feature
        return None

    def _redraw(self, full: bool) -> None:
        self.render_sync.on_state_change(full=full)


@lru_cache(maxsize=1)
def _require_shapely_point_factory() -> Any:
    try:
        from shapely.geometry import Point
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for hit-testing features") from exc
    return Point

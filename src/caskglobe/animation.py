"""Time-based viewport transitions and the immediate drag/zoom paths."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable

from .config import AnimationConfig, DragConfig, ZoomConfig
from .models import LonLat, ProjectionState, ViewportAnimation, is_finite_pair


_LOGGER = logging.getLogger("caskglobe.animation")

Clock = Callable[[], float]
Redraw = Callable[[bool], None]


def ease_linear(t: float) -> float:
    return t


def ease_quad_in_out(t: float) -> float:
    t *= 2.0
    if t <= 1.0:
        return t * t / 2.0
    t -= 1.0
    return (t * (2.0 - t) + 1.0) / 2.0


def ease_cubic_in_out(t: float) -> float:
    t *= 2.0
    if t <= 1.0:
        return t * t * t / 2.0
    t -= 2.0
    return (t * t * t + 2.0) / 2.0


def ease_sin_in_out(t: float) -> float:
    return (1.0 - math.cos(math.pi * t)) / 2.0


EASINGS: dict[str, Callable[[float], float]] = {
    "linear": ease_linear,
    "quad_in_out": ease_quad_in_out,
    "cubic_in_out": ease_cubic_in_out,
    "sin_in_out": ease_sin_in_out,
}


def interpolate_center(start: LonLat, end: LonLat) -> Callable[[float], LonLat]:
    """Great-circle interpolator between two view centers.

    Falls back to per-axis interpolation for coincident or antipodal
    centers, where the great circle is undefined.
    """
    lon0, lat0 = math.radians(start[0]), math.radians(start[1])
    lon1, lat1 = math.radians(end[0]), math.radians(end[1])
    x0, y0, z0 = math.cos(lat0) * math.cos(lon0), math.cos(lat0) * math.sin(lon0), math.sin(lat0)
    x1, y1, z1 = math.cos(lat1) * math.cos(lon1), math.cos(lat1) * math.sin(lon1), math.sin(lat1)
    dot = max(-1.0, min(x0 * x1 + y0 * y1 + z0 * z1, 1.0))
    angle = math.acos(dot)
    sin_angle = math.sin(angle)

    if sin_angle < 1e-9:
        def linear(t: float) -> LonLat:
            return (start[0] + (end[0] - start[0]) * t, start[1] + (end[1] - start[1]) * t)

        return linear

    def slerp(t: float) -> LonLat:
        a = math.sin((1.0 - t) * angle) / sin_angle
        b = math.sin(t * angle) / sin_angle
        x = a * x0 + b * x1
        y = a * y0 + b * y1
        z = a * z0 + b * z1
        return (math.degrees(math.atan2(y, x)), math.degrees(math.atan2(z, math.hypot(x, y))))

    return slerp


def interpolate_scale(start: float, end: float) -> Callable[[float], float]:
    """Interpolates scale in log space so zoom speed feels constant."""
    if start <= 0 or end <= 0:
        return lambda t: start + (end - start) * t
    ratio = end / start
    return lambda t: start * ratio**t


class SettleTimer:
    """Debounce that fires once after a quiet period.

    Every `reset` clears the pending deadline and starts a new one; `poll`
    reports True exactly once when the latest deadline has passed.
    """

    def __init__(self, delay: float, *, clock: Clock = time.monotonic) -> None:
        self.delay = delay
        self.clock = clock
        self._deadline: float | None = None

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def reset(self, now: float | None = None) -> None:
        current = self.clock() if now is None else now
        self._deadline = current + self.delay

    def cancel(self) -> None:
        self._deadline = None

    def poll(self, now: float | None = None) -> bool:
        if self._deadline is None:
            return False
        current = self.clock() if now is None else now
        if current < self._deadline:
            return False
        self._deadline = None
        return True


class ViewportAnimator:
    """Owns every mutation of the shared ProjectionState.

    Programmatic moves go through `rotate_to`, which is advanced by `tick`
    once per display frame. Gestures go through `drag_step` and `zoom_step`,
    which write the state immediately and cancel any running tween.
    """

    def __init__(
        self,
        state: ProjectionState,
        *,
        animation: AnimationConfig | None = None,
        drag: DragConfig | None = None,
        zoom: ZoomConfig | None = None,
        redraw: Redraw | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.state = state
        self.animation_cfg = animation if animation is not None else AnimationConfig()
        self.drag_cfg = drag if drag is not None else DragConfig()
        self.zoom_cfg = zoom if zoom is not None else ZoomConfig()
        self.redraw = redraw
        self.clock = clock
        self._generation = 0
        self._animation: ViewportAnimation | None = None
        self._center_at: Callable[[float], LonLat] | None = None
        self._scale_at: Callable[[float], float] | None = None

    @property
    def is_animating(self) -> bool:
        return self._animation is not None

    @property
    def current_animation(self) -> ViewportAnimation | None:
        return self._animation

    def rotate_to(
        self,
        target: Any,
        target_scale: float | None = None,
        on_complete: Callable[[], None] | None = None,
        *,
        duration: float | None = None,
        now: float | None = None,
    ) -> int:
        """Start a tween bringing `target` (lon, lat) to the view center."""
        if not is_finite_pair(target):
            raise ValueError(f"rotate_to target must be a finite (lon, lat) pair, got {target!r}")
        if target_scale is not None and not math.isfinite(float(target_scale)):
            raise ValueError(f"rotate_to scale must be finite, got {target_scale!r}")

        lon, lat = float(target[0]), float(target[1])
        start_state = self.state.copy()
        target_state = self.state.copy()
        target_state.rotation_lambda = -lon
        target_state.rotation_phi = -lat
        target_state.rotation_gamma = 0.0
        target_state.scale = self.state.clamp_scale(
            self.state.scale if target_scale is None else float(target_scale)
        )

        self._generation += 1
        self._animation = ViewportAnimation(
            start_state=start_state,
            target_state=target_state,
            start_time=self.clock() if now is None else now,
            duration=self.animation_cfg.duration_s if duration is None else float(duration),
            easing=EASINGS[self.animation_cfg.easing],
            generation=self._generation,
            on_complete=on_complete,
        )
        self._center_at = interpolate_center(start_state.center, (lon, lat))
        self._scale_at = interpolate_scale(start_state.scale, target_state.scale)
        _LOGGER.debug(
            "rotate_to #%d: center=(%.3f, %.3f) scale=%.1f",
            self._generation,
            lon,
            lat,
            target_state.scale,
        )
        return self._generation

    def zoom_by(self, factor: float, *, now: float | None = None) -> int:
        return self.rotate_to(
            self.state.center,
            self.state.scale * factor,
            duration=self.zoom_cfg.button_duration_s,
            now=now,
        )

    def cancel(self) -> None:
        if self._animation is not None:
            _LOGGER.debug("Animation #%d cancelled", self._animation.generation)
        self._generation += 1
        self._animation = None
        self._center_at = None
        self._scale_at = None

    def tick(self, now: float | None = None) -> bool:
        """Advance the running tween by one frame; True while still running."""
        animation = self._animation
        if animation is None:
            return False
        t = animation.progress(self.clock() if now is None else now)

        if t >= 1.0:
            self.state.assign(animation.target_state)
            self._animation = None
            self._center_at = None
            self._scale_at = None
            self._notify(full=True)
            # A redraw subscriber may already have started a newer tween.
            if animation.generation == self._generation and animation.on_complete is not None:
                try:
                    animation.on_complete()
                except Exception as exc:
                    _LOGGER.warning("rotate_to completion callback failed: %s", exc)
            return False

        center_at = self._center_at
        scale_at = self._scale_at
        if center_at is None or scale_at is None:
            raise RuntimeError(f"Animation #{animation.generation} has no interpolators")
        eased = animation.easing(t)
        lon, lat = center_at(eased)
        start = animation.start_state
        target = animation.target_state
        self.state.rotation_lambda = -lon
        self.state.rotation_phi = -lat
        self.state.rotation_gamma = start.rotation_gamma + (target.rotation_gamma - start.rotation_gamma) * eased
        self.state.scale = self.state.clamp_scale(scale_at(eased))
        # Tween frames redraw everything so markers and labels follow the move.
        self._notify(full=True)
        return True

    def drag_step(self, dx: float, dy: float) -> bool:
        """Rotate by a pointer delta, scaled so drag speed ignores zoom level."""
        if not (math.isfinite(dx) and math.isfinite(dy)):
            _LOGGER.warning("Ignoring non-finite drag delta (%r, %r)", dx, dy)
            return False
        self._cancel_for_gesture()
        k = self.drag_cfg.sensitivity / self.state.scale
        self.state.rotation_lambda = math.fmod(self.state.rotation_lambda + dx * k, 360.0)
        self.state.rotation_phi = max(-90.0, min(self.state.rotation_phi - dy * k, 90.0))
        self.state.scale = self.state.clamp_scale(self.state.scale)
        self._notify(full=False)
        return True

    def zoom_step(self, new_scale: float, anchor: Any = None) -> bool:
        """Set the scale from a continuous gesture, clamped to the allowed range."""
        if not math.isfinite(new_scale):
            _LOGGER.warning("Ignoring non-finite zoom scale %r", new_scale)
            return False
        if anchor is not None and not is_finite_pair(anchor):
            _LOGGER.debug("Ignoring invalid zoom anchor %r", anchor)
        self._cancel_for_gesture()
        self.state.scale = self.state.clamp_scale(new_scale)
        self._notify(full=False)
        return True

    def _cancel_for_gesture(self) -> None:
        if self._animation is not None:
            self.cancel()

    def _notify(self, *, full: bool) -> None:
        if self.redraw is not None:
            self.redraw(full)

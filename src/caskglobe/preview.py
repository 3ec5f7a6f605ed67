"""Debug rendering of frame snapshots to an image file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Sequence

from .config import ViewportConfig
from .models import ScreenPath
from .render_sync import SPHERE_KEY, FrameSnapshot


_LOGGER = logging.getLogger("caskglobe.preview")


@dataclass(frozen=True, slots=True)
class PreviewStyle:
    ocean_color: str = "#dfe9f2"
    outline_color: str = "#4a5a6a"
    land_color: str = "#f4efe6"
    border_color: str = "#8c8577"
    route_color: str = "#8b3a1e"
    marker_color: str = "#1f1f1f"
    label_color: str = "#1f1f1f"
    font_size: float = 7.5
    line_width: float = 0.8


class FramePreview:
    """Frame subscriber that writes each full pass to `output_path`.

    Screen coordinates map one-to-one to pixels, y pointing down. Reduced
    passes are skipped unless `full_only` is False.
    """

    def __init__(
        self,
        output_path: Path,
        viewport: ViewportConfig | None = None,
        *,
        dpi: int = 100,
        style: PreviewStyle | None = None,
        label_text: Callable[[str, str], str] | None = None,
        full_only: bool = True,
    ) -> None:
        self.output_path = output_path
        self.viewport = viewport if viewport is not None else ViewportConfig()
        self.dpi = dpi
        self.style = style if style is not None else PreviewStyle()
        self.label_text = label_text
        self.full_only = full_only
        self.frames_written = 0

    def __call__(self, snapshot: FrameSnapshot) -> None:
        if self.full_only and not snapshot.full:
            return
        self.render(snapshot)

    def render(self, snapshot: FrameSnapshot) -> Path:
        plt = _require_matplotlib()
        width_px = self.viewport.width_px
        height_px = self.viewport.height_px
        fig, ax = plt.subplots(figsize=(width_px / self.dpi, height_px / self.dpi), dpi=self.dpi)
        fig.subplots_adjust(left=0.0, right=1.0, bottom=0.0, top=1.0)
        try:
            ax.set_xlim(0, width_px)
            ax.set_ylim(height_px, 0)
            ax.set_aspect("equal")
            ax.set_axis_off()
            self._draw_paths(ax, snapshot)
            self._draw_points(ax, snapshot)
            self._draw_labels(ax, snapshot)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(self.output_path, dpi=self.dpi)
        finally:
            plt.close(fig)
        self.frames_written += 1
        _LOGGER.debug("Preview frame #%d written to %s", snapshot.generation, self.output_path)
        return self.output_path

    def _draw_paths(self, ax: Any, snapshot: FrameSnapshot) -> None:
        style = self.style
        sphere = snapshot.sphere
        if sphere is not None:
            _fill_path(ax, sphere, facecolor=style.ocean_color, edgecolor=style.outline_color, zorder=1)
        for paths in snapshot.paths.values():
            for key, path in paths.items():
                if key == SPHERE_KEY:
                    continue
                if path.closed:
                    _fill_path(
                        ax,
                        path,
                        facecolor=style.land_color,
                        edgecolor=style.border_color,
                        line_width=style.line_width * 0.6,
                        zorder=2,
                    )
                else:
                    _stroke_path(ax, path, color=style.route_color, line_width=style.line_width, zorder=3)

    def _draw_points(self, ax: Any, snapshot: FrameSnapshot) -> None:
        for layer_name in snapshot.points:
            visible = list(snapshot.visible_points(layer_name).values())
            if not visible:
                continue
            ax.scatter(
                [point[0] for point in visible],
                [point[1] for point in visible],
                s=9.0,
                c=self.style.marker_color,
                marker="o",
                linewidths=0.0,
                zorder=4,
            )

    def _draw_labels(self, ax: Any, snapshot: FrameSnapshot) -> None:
        for layer_name, labels in snapshot.labels.items():
            for key, label in labels.items():
                text = self.label_text(layer_name, key) if self.label_text is not None else key
                ax.text(
                    label.position[0],
                    label.position[1],
                    text,
                    color=self.style.label_color,
                    fontsize=self.style.font_size,
                    ha="left",
                    va="center",
                    clip_on=True,
                    zorder=5,
                )


def _fill_path(
    ax: Any,
    path: ScreenPath,
    *,
    facecolor: str,
    edgecolor: str,
    line_width: float = 0.8,
    zorder: int = 1,
) -> None:
    for part in path.parts:
        if len(part) < 3:
            continue
        xs, ys = _unzip(part)
        ax.fill(xs, ys, facecolor=facecolor, edgecolor=edgecolor, linewidth=line_width, zorder=zorder)


def _stroke_path(ax: Any, path: ScreenPath, *, color: str, line_width: float, zorder: int) -> None:
    for part in path.parts:
        if len(part) < 2:
            continue
        xs, ys = _unzip(part)
        ax.plot(
            xs,
            ys,
            color=color,
            linewidth=line_width,
            zorder=zorder,
            solid_joinstyle="round",
            solid_capstyle="round",
        )


def _unzip(points: Sequence[tuple[float, float]]) -> tuple[list[float], list[float]]:
    return ([float(point[0]) for point in points], [float(point[1]) for point in points])


@lru_cache(maxsize=1)
def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for frame previews") from exc
    return plt

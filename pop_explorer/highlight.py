"""
Marching-ants outline over the drawn region and the saved queries.

Every tick advances a dash offset and restyles each graphic on the watched
layers with a dashed outline. The colours always come from a baseline
captured the first time a graphic is seen, never from the graphic's current
symbol, so repeated restyling cannot drift away from the original look.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from pop_explorer import config
from pop_explorer.map_graphics import Graphic, GraphicsLayer, Symbol

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HighlightBaseline:
    fill_color: str
    outline_color: str
    outline_width: float

    @classmethod
    def of(cls, symbol: Symbol) -> "HighlightBaseline":
        return cls(
            fill_color=symbol.fill_color,
            outline_color=symbol.outline_color,
            outline_width=symbol.outline_width,
        )


class HighlightAnimator:
    def __init__(self, layers: Iterable[GraphicsLayer], *, interval_ms: int = None,
                 dash=None, step: int = None):
        self.layers = list(layers)
        self.dash = tuple(dash or config.HIGHLIGHT_DASH)
        self.period = sum(self.dash)
        self.step = config.HIGHLIGHT_STEP if step is None else step
        self.interval_ms = interval_ms or config.HIGHLIGHT_INTERVAL_MS

        self.offset = 0
        self.baselines: Dict[int, HighlightBaseline] = {}

        self._after: Optional[Callable] = None
        self._cancel: Optional[Callable] = None
        self._after_id = None

        for layer in self.layers:
            layer.on_removed(self.forget)

    # ---- baseline cache ----
    def baseline_for(self, graphic: Graphic) -> HighlightBaseline:
        """Insert-if-absent: the first symbol seen for a graphic wins."""
        baseline = self.baselines.get(graphic.key)
        if baseline is None:
            baseline = HighlightBaseline.of(graphic.symbol)
            self.baselines[graphic.key] = baseline
        return baseline

    def forget(self, graphic: Graphic) -> None:
        self.baselines.pop(graphic.key, None)

    # ---- styles ----
    def animated_symbol(self, baseline: HighlightBaseline, offset: int) -> Symbol:
        return Symbol(
            fill_color=baseline.fill_color,
            outline_color=baseline.outline_color,
            outline_width=baseline.outline_width,
            dash=self.dash,
            dash_offset=offset,
        )

    @staticmethod
    def plain_symbol(baseline: HighlightBaseline) -> Symbol:
        return Symbol(
            fill_color=baseline.fill_color,
            outline_color=baseline.outline_color,
            outline_width=baseline.outline_width,
        )

    def animate(self, graphic: Graphic, offset: int = None) -> Symbol:
        offset = self.offset if offset is None else offset
        symbol = self.animated_symbol(self.baseline_for(graphic), offset)
        graphic.set_symbol(symbol)
        return symbol

    def restore(self, graphic: Graphic) -> Symbol:
        symbol = self.plain_symbol(self.baseline_for(graphic))
        graphic.set_symbol(symbol)
        return symbol

    def restore_all(self) -> None:
        for layer in self.layers:
            for graphic in layer:
                self.restore(graphic)

    # ---- ticking ----
    def tick(self) -> int:
        self.offset = (self.offset + self.step) % self.period
        for layer in self.layers:
            for graphic in layer:
                self.animate(graphic)
        return self.offset

    def start(self, after: Callable, cancel: Callable = None) -> None:
        """Run forever on a Tk-style scheduler: after(ms, fn) -> id, cancel(id)."""
        self.stop()
        self._after = after
        self._cancel = cancel
        self._after_id = after(self.interval_ms, self._run)

    def _run(self) -> None:
        try:
            self.tick()
        except Exception as e:
            log.warning("Highlight tick failed: %s", e)
        if self._after is not None:
            self._after_id = self._after(self.interval_ms, self._run)

    def stop(self, restore: bool = False) -> None:
        if self._after_id is not None and self._cancel is not None:
            try:
                self._cancel(self._after_id)
            except Exception:
                pass
        self._after = None
        self._after_id = None
        if restore:
            self.restore_all()

    @property
    def running(self) -> bool:
        return self._after is not None

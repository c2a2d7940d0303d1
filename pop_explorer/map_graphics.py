"""
Graphics drawn over the map: the editable region, the drawn region and the
saved queries.

A Graphic is a geometry plus a Symbol. Layers hold graphics; MapRenderer
paints them onto a tkintermapview widget and keeps the widget objects in
step when a graphic moves or is restyled.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from pop_explorer import config
from pop_explorer.edit_session import BufferTarget, DrawnTarget, SavedTarget
from pop_explorer.geometry import Geometry

log = logging.getLogger(__name__)

_graphic_keys = itertools.count(1)


@dataclass(frozen=True)
class Symbol:
    fill_color: str
    outline_color: str
    outline_width: float = config.OUTLINE_WIDTH
    dash: Optional[Tuple[int, ...]] = None
    dash_offset: int = 0


def buffer_symbol() -> Symbol:
    return Symbol(fill_color=config.BUFFER_FILL, outline_color=config.BUFFER_OUTLINE)


def drawn_symbol() -> Symbol:
    return Symbol(fill_color=config.DRAWN_FILL, outline_color=config.DRAWN_OUTLINE)


def editable_symbol(color: str) -> Symbol:
    return Symbol(fill_color=color, outline_color=config.EDITABLE_OUTLINE,
                  outline_width=config.OUTLINE_WIDTH + 1)


def saved_symbol(color: str) -> Symbol:
    return Symbol(fill_color=color, outline_color=color)


class Graphic:
    def __init__(self, geometry: Geometry, symbol: Symbol, *, name: str = None):
        self.key = next(_graphic_keys)
        self.geometry = geometry
        self.symbol = symbol
        self.name = name
        self.map_object = None
        self._on_restyle: Optional[Callable[["Graphic"], None]] = None

    def __repr__(self):
        return f"Graphic(key={self.key}, name={self.name!r})"

    def set_symbol(self, symbol: Symbol) -> None:
        self.symbol = symbol
        if self._on_restyle is not None:
            self._on_restyle(self)


class GraphicsLayer:
    def __init__(self, name: str):
        self.name = name
        self._graphics: Dict[str, Graphic] = {}
        self._removed_listeners: List[Callable[[Graphic], None]] = []

    def __iter__(self) -> Iterator[Graphic]:
        return iter(list(self._graphics.values()))

    def __len__(self):
        return len(self._graphics)

    def get(self, name: str) -> Optional[Graphic]:
        return self._graphics.get(name)

    def add(self, graphic: Graphic) -> Graphic:
        old = self._graphics.get(graphic.name)
        if old is not None and old is not graphic:
            self.remove(graphic.name)
        self._graphics[graphic.name] = graphic
        return graphic

    def remove(self, name: str) -> Optional[Graphic]:
        graphic = self._graphics.pop(name, None)
        if graphic is not None:
            for cb in list(self._removed_listeners):
                cb(graphic)
        return graphic

    def clear(self) -> None:
        for name in list(self._graphics):
            self.remove(name)

    def on_removed(self, callback: Callable[[Graphic], None]) -> None:
        self._removed_listeners.append(callback)


class MapRenderer:
    """
    Paints graphics on a tkintermapview widget.

    Layers:
      edit  - the buffer, or a saved query while it is checked out
      drawn - the freehand region
      saved - saved queries that are not checked out
    """

    def __init__(self, map_widget, saved=None):
        self.map_widget = map_widget
        self.saved = saved
        self.edit_layer = GraphicsLayer("edit")
        self.drawn_layer = GraphicsLayer("drawn")
        self.saved_layer = GraphicsLayer("saved")
        for layer in (self.edit_layer, self.drawn_layer, self.saved_layer):
            layer.on_removed(self._erase)

        if saved is not None:
            saved.subscribe(self.sync_saved)

    @property
    def highlight_layers(self):
        return [self.drawn_layer, self.saved_layer]

    # ---- widget plumbing ----
    def _erase(self, graphic: Graphic):
        obj = graphic.map_object
        graphic.map_object = None
        graphic._on_restyle = None
        if obj is None:
            return
        try:
            obj.delete()
        except Exception:
            pass

    def _paint(self, graphic: Graphic):
        old = graphic.map_object
        if old is not None:
            try:
                old.delete()
            except Exception:
                pass

        sym = graphic.symbol
        path = graphic.geometry.latlon_path()
        if hasattr(self.map_widget, "set_polygon"):
            graphic.map_object = self.map_widget.set_polygon(
                path,
                fill_color=sym.fill_color,
                outline_color=sym.outline_color,
                border_width=sym.outline_width,
                name=graphic.name,
            )
        elif hasattr(self.map_widget, "set_path"):
            graphic.map_object = self.map_widget.set_path(path, color=sym.outline_color, width=sym.outline_width)
        graphic._on_restyle = self._restyle
        self._apply_dash(graphic)

    def _restyle(self, graphic: Graphic):
        obj = graphic.map_object
        if obj is None:
            return
        canvas = getattr(self.map_widget, "canvas", None)
        item = getattr(obj, "canvas_polygon", None)
        if canvas is None or item is None:
            self._paint(graphic)
            return
        sym = graphic.symbol
        try:
            canvas.itemconfig(item, outline=sym.outline_color, width=sym.outline_width)
        except Exception as e:
            log.debug("Restyle of %r failed: %s", graphic, e)
            return
        self._apply_dash(graphic)

    def _apply_dash(self, graphic: Graphic):
        canvas = getattr(self.map_widget, "canvas", None)
        item = getattr(graphic.map_object, "canvas_polygon", None)
        if canvas is None or item is None:
            return
        sym = graphic.symbol
        try:
            if sym.dash:
                canvas.itemconfig(item, dash=sym.dash, dashoffset=sym.dash_offset)
            else:
                canvas.itemconfig(item, dash="")
        except Exception as e:
            log.debug("Dash update of %r failed: %s", graphic, e)

    def _place(self, layer: GraphicsLayer, name: str, geometry: Geometry, symbol: Symbol) -> Graphic:
        graphic = layer.get(name)
        if graphic is None:
            graphic = layer.add(Graphic(geometry.clone(), symbol, name=name))
        else:
            graphic.geometry = geometry.clone()
            if graphic.symbol.fill_color != symbol.fill_color or graphic.symbol.outline_color != symbol.outline_color:
                graphic.symbol = symbol
        self._paint(graphic)
        return graphic

    # ---- session renderer protocol ----
    def show_target(self, target) -> Optional[Graphic]:
        if isinstance(target, BufferTarget):
            return self._place(self.edit_layer, target.target_id, target.geometry, buffer_symbol())
        if isinstance(target, DrawnTarget):
            return self._place(self.drawn_layer, target.target_id, target.geometry, drawn_symbol())
        if isinstance(target, SavedTarget):
            entry = self.saved.get(target.query_id) if self.saved is not None else None
            color = entry.color if entry is not None else config.BUFFER_FILL
            return self._place(self.edit_layer, target.target_id, target.geometry, editable_symbol(color))
        return None

    def clear_target(self, target) -> None:
        layer = self.drawn_layer if isinstance(target, DrawnTarget) else self.edit_layer
        if target.target_id is not None:
            layer.remove(target.target_id)

    # ---- saved layer ----
    def sync_saved(self, saved) -> None:
        wanted = {q.id: q for q in saved.render_set()}
        for graphic in list(self.saved_layer):
            if graphic.name not in wanted:
                self.saved_layer.remove(graphic.name)

        for qid, entry in wanted.items():
            graphic = self.saved_layer.get(qid)
            if graphic is not None and graphic.geometry == entry.geometry:
                entry.graphic = graphic
                continue
            entry.graphic = self._place(self.saved_layer, qid, entry.geometry, saved_symbol(entry.color))


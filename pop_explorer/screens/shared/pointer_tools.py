"""
Pointer handling on the map canvas.

tkintermapview owns left-button press/drag/release for panning. In "move" and
"draw" mode those three bindings are swapped for ours and put back when the
mode returns to "pan".
"""
from pop_explorer.edit_session import EditEnd, EditStart, GeometryChanged, Rejected
from pop_explorer.map_utils import canvas_to_lonlat

PAN = "pan"
MOVE = "move"
DRAW = "draw"

_SEQUENCES = ("<Button-1>", "<B1-Motion>", "<ButtonRelease-1>")


class PointerTools:
    def __init__(self, *, root, map_widget, session, on_mode_changed=None, set_status=None):
        self.root = root
        self.map_widget = map_widget
        self.session = session
        self.on_mode_changed = on_mode_changed
        self.set_status = set_status or (lambda _t: None)

        self.mode = PAN
        self._anchor = None
        self._origin = None
        self._trace = []
        self._preview = None

        self.canvas = map_widget.canvas
        self._pan_handlers = {
            "<Button-1>": getattr(map_widget, "mouse_click", None),
            "<B1-Motion>": getattr(map_widget, "mouse_move", None),
            "<ButtonRelease-1>": getattr(map_widget, "mouse_release", None),
        }
        self._escape_id = root.bind("<Escape>", self._on_escape)

    def detach(self):
        """Drop the root-level Escape binding; call when the owning screen goes away."""
        if self._escape_id is None:
            return
        try:
            self.root.unbind("<Escape>", self._escape_id)
        except Exception:
            pass
        self._escape_id = None

    # ---- mode switching ----
    def set_mode(self, mode):
        if mode == self.mode:
            return
        if self.session.state.dragging:
            self.session.dispatch(EditEnd(committed=False))
        self._clear_preview()

        self.mode = mode
        if mode == PAN:
            for seq in _SEQUENCES:
                handler = self._pan_handlers.get(seq)
                if handler is not None:
                    self.canvas.bind(seq, handler)
        else:
            press, motion, release = {
                MOVE: (self._move_press, self._move_motion, self._move_release),
                DRAW: (self._draw_press, self._draw_motion, self._draw_release),
            }[mode]
            self.canvas.bind("<Button-1>", press)
            self.canvas.bind("<B1-Motion>", motion)
            self.canvas.bind("<ButtonRelease-1>", release)

        if self.on_mode_changed:
            self.on_mode_changed(mode)

    # ---- move ----
    def _move_press(self, event):
        target = self.session.state.target
        self.session.dispatch(EditStart(target.target_id))
        if not self.session.state.dragging:
            return
        self._anchor = canvas_to_lonlat(self.map_widget, event.x, event.y)
        self._origin = target.geometry.clone()

    def _move_motion(self, event):
        if self._anchor is None or not self.session.state.dragging:
            return
        lon, lat = canvas_to_lonlat(self.map_widget, event.x, event.y)
        geom = self._origin.translated(lon - self._anchor[0], lat - self._anchor[1])
        self.session.dispatch(GeometryChanged(geom))

    def _move_release(self, _event):
        if self._anchor is None:
            return
        self._anchor = None
        self._origin = None
        self.session.dispatch(EditEnd(committed=True))

    def _on_escape(self, _event=None):
        if self.mode == MOVE and self.session.state.dragging:
            self._anchor = None
            self._origin = None
            self.session.dispatch(EditEnd(committed=False))
            self.set_status("Drag cancelled.")
        elif self.mode == DRAW and self._trace:
            self._trace = []
            self._clear_preview()
            self.set_status("Drawing cancelled.")

    # ---- draw ----
    def _draw_press(self, event):
        self._trace = [canvas_to_lonlat(self.map_widget, event.x, event.y)]
        self._clear_preview()

    def _draw_motion(self, event):
        if not self._trace:
            return
        self._trace.append(canvas_to_lonlat(self.map_widget, event.x, event.y))
        self._redraw_preview()

    def _draw_release(self, _event):
        points, self._trace = self._trace, []
        self._clear_preview()
        if not points:
            return
        effects = self.session.finish_drawing(points)
        if any(isinstance(e, Rejected) for e in effects):
            return
        self.set_mode(PAN)

    def _redraw_preview(self):
        self._clear_preview()
        if len(self._trace) < 2 or not hasattr(self.map_widget, "set_path"):
            return
        path = [(lat, lon) for lon, lat in self._trace]
        self._preview = self.map_widget.set_path(path, width=2)

    def _clear_preview(self):
        if self._preview is None:
            return
        try:
            self._preview.delete()
        except Exception:
            pass
        self._preview = None

import logging
import tkinter as tk
import tkinter.filedialog as filedialog

from pop_explorer import config
from pop_explorer.edit_session import EditSession, Mode
from pop_explorer.errors import CapacityExceeded
from pop_explorer.highlight import HighlightAnimator
from pop_explorer.map_graphics import MapRenderer
from pop_explorer.map_utils import build_map, fit_to_geometry
from pop_explorer.population_query import PopulationIndex, QueryCoordinator, ServerDataset
from pop_explorer.saved_queries import SavedQuerySet
from pop_explorer.ui_layout import build_body, build_header, section_label

from pop_explorer.screens.shared.intro_panel import build_intro_panel
from pop_explorer.screens.shared.kml_export import export_saved_queries_kml
from pop_explorer.screens.shared.pointer_tools import DRAW, MOVE, PAN, PointerTools
from pop_explorer.screens.shared.saved_list import build_saved_list

log = logging.getLogger(__name__)


class PopulationPanel:
    """Display sink for the session: big number plus share of the reference population."""

    def __init__(self, parent, row):
        self.value_lbl = tk.Label(parent, text="-", bg=config.BG, fg=config.FG, font=config.POP_FONT, anchor="w")
        self.value_lbl.grid(row=row, column=0, columnspan=2, sticky="ew", padx=10)

        self.pct_lbl = tk.Label(parent, text="", bg=config.BG, fg=config.MUTED, font=config.BODY_FONT, anchor="w")
        self.pct_lbl.grid(row=row + 1, column=0, columnspan=2, sticky="ew", padx=10, pady=(0, 6))

    def show(self, reading):
        self.value_lbl.config(text=reading.population_text)
        self.pct_lbl.config(text=reading.percent_of_reference)

    def clear(self):
        self.value_lbl.config(text="-")
        self.pct_lbl.config(text="")


def explorer_screen(root):
    frame = tk.Frame(root, bg=config.BG)

    saved = SavedQuerySet()

    def do_export():
        if len(saved) == 0:
            set_status("Nothing to export yet.")
            return
        path = filedialog.asksaveasfilename(
            defaultextension=".kml",
            filetypes=[("KML", "*.kml")],
            initialfile="saved_queries.kml",
        )
        if not path:
            return
        try:
            n = export_saved_queries_kml(path=path, saved=saved, reference_label=config.REFERENCE_LABEL)
        except OSError as e:
            set_status(f"Export failed: {e}")
            return
        set_status(f"Exported {n} saved queries ✅")

    build_header(
        frame,
        "Population Buffer Explorer",
        subtitle_text="Live population counts for any area",
        actions=[("Export KML", do_export)],
    )

    left, right = build_body(frame, config.BG)

    # ---- Map ----
    map_widget = build_map(right)

    # ---- Left panel ----
    build_intro_panel(left, row=0)

    section_label(left, "Population", row=1)
    panel = PopulationPanel(left, row=2)

    status_lbl = tk.Label(
        left, text="", bg=config.BG, fg=config.FG, font=config.BODY_FONT,
        wraplength=320, justify="left", anchor="w"
    )
    status_lbl.grid(row=4, column=0, columnspan=2, sticky="ew", padx=10, pady=(0, 6))

    def set_status(text):
        status_lbl.config(text=text)

    # ---- Core wiring ----
    def post(fn):
        # Worker threads hand completions back to the Tk loop
        root.after(0, fn)

    server = ServerDataset()
    index = PopulationIndex(server)
    coordinator = QueryCoordinator(server, index, post=post)
    renderer = MapRenderer(map_widget, saved)

    save_btn = None
    mode_buttons = {}

    def refresh_controls(_state=None):
        if save_btn is not None:
            save_btn.config(state="normal" if session.can_save else "disabled")
            if saved.is_full:
                save_btn.config(text=f"Saved list full ({saved.capacity})")
            else:
                save_btn.config(text="Save query")

    session = EditSession(
        coordinator,
        saved,
        renderer=renderer,
        display=panel,
        on_status=set_status,
        on_state_changed=refresh_controls,
    )
    saved.subscribe(refresh_controls)

    animator = HighlightAnimator(renderer.highlight_layers)
    animator.start(root.after, root.after_cancel)

    # ---- Radius ----
    section_label(left, "Buffer radius", row=5)
    radius_frame = tk.Frame(left, bg=config.BG)
    radius_frame.grid(row=6, column=0, columnspan=2, sticky="ew", padx=10)
    radius_frame.grid_columnconfigure(0, weight=1)

    radius_var = tk.DoubleVar(master=root, value=config.DEFAULT_RADIUS_KM)
    radius_lbl = tk.Label(radius_frame, text=f"{config.DEFAULT_RADIUS_KM:.1f} km", bg=config.BG, fg=config.FG,
                          width=7, anchor="e")
    radius_lbl.grid(row=0, column=1, sticky="e")

    def on_radius(val):
        r = float(val)
        radius_lbl.config(text=f"{r:.1f} km")
        session.set_radius(r)

    tk.Scale(
        radius_frame, from_=config.MIN_RADIUS_KM, to=config.MAX_RADIUS_KM,
        resolution=config.RADIUS_STEP_KM, orient="horizontal",
        variable=radius_var, length=240, showvalue=False,
        bg=config.BG, fg=config.FG, highlightthickness=0, troughcolor="#2A3B57",
        command=on_radius
    ).grid(row=0, column=0, sticky="ew", pady=(2, 8))

    # ---- Tools ----
    tools = PointerTools(
        root=root,
        map_widget=map_widget,
        session=session,
        set_status=set_status,
    )

    tools_frame = tk.Frame(left, bg=config.BG)
    tools_frame.grid(row=7, column=0, columnspan=2, sticky="ew", padx=10, pady=(4, 8))

    def on_mode_changed(mode):
        for m, btn in mode_buttons.items():
            btn.config(relief="sunken" if m == mode else "raised")
        hints = {
            PAN: "Click the map to place a buffer.",
            MOVE: "Drag the active region. Esc cancels.",
            DRAW: "Press and drag to trace a region.",
        }
        set_status(hints[mode])

    tools.on_mode_changed = on_mode_changed

    for i, (mode, text) in enumerate(((PAN, "Pan"), (MOVE, "Move"), (DRAW, "Draw"))):
        btn = tk.Button(tools_frame, text=text, bg=config.BTN, fg=config.FG, width=6,
                        command=lambda m=mode: tools.set_mode(m))
        btn.grid(row=0, column=i, padx=(0, 6))
        mode_buttons[mode] = btn

    def on_clear():
        tools.set_mode(PAN)
        session.clear()
        set_status("Cleared.")

    tk.Button(tools_frame, text="Clear", bg=config.DANGER, fg=config.FG, width=6, command=on_clear)\
        .grid(row=0, column=3)

    # ---- Save ----
    def on_save():
        try:
            entry = session.save_current()
        except CapacityExceeded as e:
            set_status(str(e))
            refresh_controls()
            return
        if entry is not None:
            set_status(f"Saved as {entry.label}.")

    save_btn = tk.Button(left, text="Save query", bg=config.BTN, fg=config.FG, state="disabled", command=on_save)
    save_btn.grid(row=8, column=0, columnspan=2, sticky="ew", padx=10, pady=(0, 6))

    def zoom_to_saved(query_id):
        entry = saved.get(query_id)
        if entry is not None:
            fit_to_geometry(map_widget, entry.geometry)

    section_label(left, "Saved queries", row=9)
    build_saved_list(parent=left, row=10, session=session, set_status=set_status, on_selected=zoom_to_saved)

    # ---- Map clicks ----
    def on_map_click(coords):
        if tools.mode != PAN:
            return
        lat, lon = coords
        if session.mode in (Mode.EDITING_DRAWN, Mode.EDITING_SAVED):
            set_status("Clear the current region before placing a buffer.")
            return
        session.click(lon, lat)

    if hasattr(map_widget, "add_left_click_map_command"):
        map_widget.add_left_click_map_command(on_map_click)

    def on_destroy(event):
        if event.widget is frame:
            animator.stop()
            tools.detach()

    frame.bind("<Destroy>", on_destroy)

    on_mode_changed(PAN)
    refresh_controls()
    log.info("Explorer screen ready (dataset %s)", config.POPULATION_LAYER_URL)

    return frame

import tkinter as tk

from pop_explorer import config


def build_header(parent: tk.Widget, title_text: str, subtitle_text: str = None, actions=None):
    """
    Title bar. `actions` is a list of (label, command) buttons placed on the right.
    """
    header = tk.Frame(parent, height=config.HEADER_HEIGHT, bg=config.BG)
    header.pack(fill="x")
    header.pack_propagate(False)

    title_lbl = tk.Label(
        header,
        text=title_text if title_text else "Population Buffer Explorer",
        bg=config.BG,
        fg=config.FG,
        font=config.TITLE_FONT
    )
    title_lbl.grid(row=0, column=0, padx=10, pady=(12, 0), sticky="w")

    if subtitle_text:
        tk.Label(
            header,
            text=subtitle_text,
            bg=config.BG,
            fg=config.MUTED,
            font=config.BODY_FONT
        ).grid(row=1, column=0, padx=10, sticky="w")

    for i, (label, command) in enumerate(actions or []):
        tk.Button(
            header,
            text=label,
            bg=config.BTN,
            fg=config.FG,
            command=command
        ).grid(row=0, column=2 + i, rowspan=2, padx=(0, 10), sticky="e")

    header.grid_columnconfigure(1, weight=1)
    return header


def build_body(parent, bg):
    """
    PACK-only body builder.
    Left side scrolls; right side (map) stays fixed.
    """
    body = tk.Frame(parent, bg=bg)
    body.pack(fill="both", expand=True)

    # Right panel (map)
    right = tk.Frame(body, bg=bg)
    right.pack(side="right", fill="both", expand=True)

    # Left panel (scrollable)
    left_outer = tk.Frame(body, bg=bg, highlightthickness=0, bd=0)
    left_outer.pack(side="left", fill="y")

    left_outer.configure(width=config.LEFT_PANEL_WIDTH)
    left_outer.pack_propagate(False)

    left_canvas = tk.Canvas(
        left_outer,
        bg=bg,
        highlightthickness=0,
        bd=0
    )
    left_canvas.pack(side="left", fill="both", expand=True)

    left_scrollbar = tk.Scrollbar(
        left_outer,
        orient="vertical",
        command=left_canvas.yview,
        bg=config.BG,
        activebackground=config.BTN,
        troughcolor=config.BG,
        highlightthickness=0,
        bd=0
    )
    left_scrollbar.pack(side="right", fill="y")

    left_canvas.configure(yscrollcommand=left_scrollbar.set)

    left = tk.Frame(left_canvas, bg=bg)
    window_id = left_canvas.create_window((0, 0), window=left, anchor="nw")

    def _on_left_configure(_event=None):
        left_canvas.configure(scrollregion=left_canvas.bbox("all"))

    left.bind("<Configure>", _on_left_configure)

    def _on_canvas_configure(event):
        left_canvas.itemconfig(window_id, width=event.width)

    left_canvas.bind("<Configure>", _on_canvas_configure)

    # Wheel scrolling only while the pointer is over the left panel, so the
    # map keeps its own wheel zoom.
    toplevel = parent.winfo_toplevel()
    _wheel_bound = {"on": False}

    def _scroll_units(units: int):
        try:
            if left_canvas.winfo_exists():
                left_canvas.yview_scroll(units, "units")
        except tk.TclError:
            pass
        return "break"

    def _on_mousewheel(event):
        delta = getattr(event, "delta", 0)
        if delta:
            return _scroll_units(int(-1 * (delta / 120)))
        return None

    def _on_linux_wheel_up(_event):
        return _scroll_units(-1)

    def _on_linux_wheel_down(_event):
        return _scroll_units(1)

    def _bind_wheel(_e=None):
        if _wheel_bound["on"]:
            return
        _wheel_bound["on"] = True
        toplevel.bind_all("<MouseWheel>", _on_mousewheel)
        toplevel.bind_all("<Button-4>", _on_linux_wheel_up)
        toplevel.bind_all("<Button-5>", _on_linux_wheel_down)

    def _unbind_wheel(_e=None):
        if not _wheel_bound["on"]:
            return
        _wheel_bound["on"] = False
        try:
            toplevel.unbind_all("<MouseWheel>")
            toplevel.unbind_all("<Button-4>")
            toplevel.unbind_all("<Button-5>")
        except tk.TclError:
            pass

    for w in (left_outer, left_canvas, left):
        w.bind("<Enter>", _bind_wheel)
        w.bind("<Leave>", _unbind_wheel)

    def _on_body_destroy(event):
        if event.widget is body:
            _unbind_wheel()

    body.bind("<Destroy>", _on_body_destroy)

    return left, right


def section_label(parent, text, row):
    lbl = tk.Label(parent, text=text, bg=config.BG, fg=config.FG, font=config.SUBTITLE_FONT, anchor="w")
    lbl.grid(row=row, column=0, columnspan=2, sticky="ew", padx=10, pady=(12, 4))
    return lbl

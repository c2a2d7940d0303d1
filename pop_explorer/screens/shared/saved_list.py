import tkinter as tk

from pop_explorer import config


def build_saved_list(*, parent, row, session, set_status, on_selected=None):
    """
    Saved-query list under the population readout.

    Pure projection of `session.saved.rows()`: it is rebuilt from scratch on
    every change to the saved set.
    """
    saved = session.saved

    frame = tk.Frame(parent, bg=config.BG)
    frame.grid(row=row, column=0, columnspan=2, sticky="ew", padx=10, pady=(0, 10))
    frame.grid_columnconfigure(0, weight=1)

    count_lbl = tk.Label(frame, text="", bg=config.BG, fg=config.MUTED, font=config.BODY_FONT, anchor="w")
    count_lbl.grid(row=0, column=0, sticky="w")

    rows_frame = tk.Frame(frame, bg=config.BG)
    rows_frame.grid(row=1, column=0, sticky="ew")
    rows_frame.grid_columnconfigure(1, weight=1)

    def on_relabel(query_id, entry):
        try:
            text = entry.get()
        except tk.TclError:
            return
        if not session.relabel_saved(query_id, text):
            current = saved.get(query_id)
            if current is not None:
                entry.delete(0, "end")
                entry.insert(0, current.label)

    def on_edit(query_id):
        session.select_saved(query_id)
        if on_selected is not None:
            on_selected(query_id)
        set_status("Switch to Move and drag the highlighted query. Release to put it back.")

    def on_remove(query_id):
        session.remove_saved(query_id)
        set_status("Saved query removed.")

    def render(_saved=None):
        for w in rows_frame.winfo_children():
            w.destroy()

        rows = saved.rows()
        count_lbl.config(text=f"{len(rows)} / {saved.capacity} saved")

        if not rows:
            tk.Label(
                rows_frame, text="No saved queries yet.",
                bg=config.BG, fg=config.MUTED, font=config.BODY_FONT, anchor="w"
            ).grid(row=0, column=0, columnspan=4, sticky="ew", pady=4)
            return

        for r, item in enumerate(rows):
            swatch = tk.Frame(rows_frame, bg=item["color"], width=14, height=14)
            swatch.grid(row=r * 2, column=0, rowspan=2, padx=(0, 6), pady=4, sticky="n")

            label_entry = tk.Entry(rows_frame)
            label_entry.insert(0, item["label"])
            label_entry.grid(row=r * 2, column=1, sticky="ew", pady=(4, 0))
            label_entry.bind("<Return>", lambda _e, qid=item["id"], ent=label_entry: on_relabel(qid, ent))
            label_entry.bind("<FocusOut>", lambda _e, qid=item["id"], ent=label_entry: on_relabel(qid, ent))

            detail = f"{item['population']:,} people · {item['method_description']}"
            if item["checked_out"]:
                detail += " · editing"
            tk.Label(
                rows_frame, text=detail, bg=config.BG, fg=config.MUTED,
                font=config.BODY_FONT, anchor="w"
            ).grid(row=r * 2 + 1, column=1, sticky="ew")

            tk.Button(
                rows_frame, text="Edit", bg=config.BTN, fg=config.FG, width=5,
                state="disabled" if item["checked_out"] else "normal",
                command=lambda qid=item["id"]: on_edit(qid)
            ).grid(row=r * 2, column=2, padx=(6, 0), pady=(4, 0))

            tk.Button(
                rows_frame, text="✕", bg=config.DANGER, fg=config.FG, width=3,
                command=lambda qid=item["id"]: on_remove(qid)
            ).grid(row=r * 2, column=3, padx=(6, 0), pady=(4, 0))

    saved.subscribe(render)
    render()

    return {"frame": frame, "render": render}

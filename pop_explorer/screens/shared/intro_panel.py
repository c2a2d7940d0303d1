import json
import logging
import tkinter as tk

from pop_explorer import config

log = logging.getLogger(__name__)

INTRO_TEXT = (
    "Click the map to drop a buffer, or switch to Draw and trace a region.\n"
    "Use Move to drag the active region; the population updates as you go.\n"
    f"Save up to {config.MAX_SAVED_QUERIES} queries to compare them side by side."
)


def load_settings(path=None) -> dict:
    path = path or config.SETTINGS_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        log.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def intro_dismissed(path=None) -> bool:
    return bool(load_settings(path).get("intro_dismissed"))


def dismiss_intro(path=None) -> None:
    path = path or config.SETTINGS_PATH
    data = load_settings(path)
    data["intro_dismissed"] = True
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
    except OSError as e:
        log.warning("Could not persist intro flag to %s: %s", path, e)


def build_intro_panel(parent, row):
    """Shown until the user dismisses it once; returns None when already dismissed."""
    if intro_dismissed():
        return None

    panel = tk.Frame(parent, bg=config.BG, bd=1, relief="solid")
    panel.grid(row=row, column=0, columnspan=2, sticky="ew", padx=10, pady=(10, 6))
    panel.grid_columnconfigure(0, weight=1)

    tk.Label(
        panel, text=INTRO_TEXT, bg=config.BG, fg=config.FG, font=config.BODY_FONT,
        wraplength=320, justify="left", anchor="w"
    ).grid(row=0, column=0, sticky="ew", padx=8, pady=(8, 4))

    def on_dismiss():
        dismiss_intro()
        panel.destroy()

    tk.Button(panel, text="Got it", bg=config.BTN, fg=config.FG, command=on_dismiss)\
        .grid(row=1, column=0, sticky="e", padx=8, pady=(0, 8))

    return panel

import logging
import tkinter as tk

from pop_explorer.config import BG
from pop_explorer.screens.explorer_screen import explorer_screen

current_screen = None


def show_screen(root, screen_func):
    """Destroy current screen frame and show a new one."""
    global current_screen
    if current_screen is not None:
        current_screen.destroy()

    current_screen = screen_func(root)
    current_screen.pack(expand=True, fill="both")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    root = tk.Tk()
    root.title("Population Buffer Explorer")
    root.geometry("1200x720")
    root.configure(bg=BG)

    show_screen(root, explorer_screen)
    root.mainloop()


if __name__ == "__main__":
    main()

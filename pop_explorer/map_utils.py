import tkinter as tk

import tkintermapview

from pop_explorer import config


def build_map(parent: tk.Widget, center=None, zoom=None):
    """
    Padded map area on the right-hand panel. Returns the TkinterMapView.

    center is (lat, lon) like the widget itself.
    """
    center = center or config.DEFAULT_MAP_CENTER
    zoom = config.DEFAULT_MAP_ZOOM if zoom is None else zoom

    outer = tk.Frame(parent, bg=config.BG)
    outer.pack(expand=True, fill="both", padx=10, pady=10)

    map_widget = tkintermapview.TkinterMapView(outer, corner_radius=0)
    map_widget.pack(expand=True, fill="both", padx=8, pady=8)

    map_widget.set_position(center[0], center[1])
    map_widget.set_zoom(zoom)
    return map_widget


def canvas_to_lonlat(map_widget, x, y):
    """Canvas pixel -> (lon, lat). tkintermapview itself works in (lat, lon)."""
    lat, lon = map_widget.convert_canvas_coords_to_decimal_coords(x, y)
    return (lon, lat)


def fit_corners(geometry, pad_fraction=None):
    """
    ((north, west), (south, east)) around `geometry`, grown by pad_fraction of
    its span on each side, in the order fit_bounding_box expects.
    """
    pad_fraction = config.FIT_PADDING if pad_fraction is None else pad_fraction
    west, south, east, north = geometry.bounds
    dx = (east - west) * pad_fraction
    dy = (north - south) * pad_fraction
    return (north + dy, west - dx), (south - dy, east + dx)


def fit_to_geometry(map_widget, geometry):
    top_left, bottom_right = fit_corners(geometry)
    if hasattr(map_widget, "fit_bounding_box"):
        map_widget.fit_bounding_box(top_left, bottom_right)

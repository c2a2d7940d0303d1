"""
Global configuration for Population Buffer Explorer
"""
from pathlib import Path

# ----------------- COLOURS -----------------
BG = "#1B2A40"        # Background
FG = "#FFFFFF"        # Foreground / text
BTN = "#F68B1F"       # Buttons / accents
DANGER = "#D21F2D"    # Errors / destructive actions
MUTED = "#9FB3C8"     # Secondary text

# ----------------- LAYOUT -----------------
HEADER_HEIGHT = 80
LEFT_PANEL_WIDTH = 380

# ----------------- FONTS -----------------
TITLE_FONT = ("Segoe UI", 18, "bold")
SUBTITLE_FONT = ("Segoe UI", 14, "bold")
BODY_FONT = ("Segoe UI", 12)
POP_FONT = ("Segoe UI", 26, "bold")

# ----------------- MAP DEFAULTS -----------------
DEFAULT_MAP_CENTER = (-36.8485, 174.7633)  # Auckland
DEFAULT_MAP_ZOOM = 10
FIT_PADDING = 0.25  # fraction of the region span added around it when zooming to a saved query

# ----------------- POPULATION DATA -----------------
POPULATION_LAYER_URL = (
    "https://services2.arcgis.com/vKb0s8tBIA3bdocZ/arcgis/rest/services/"
    "NZGrid_250m_ERP/FeatureServer/1"
)
POPULATION_FIELD = "PopEst2023"
POPULATION_OUT_NAME = "totalPop"

# Estimated resident population, June 2023
REFERENCE_POPULATION = 5_223_100
REFERENCE_LABEL = "NZ"

REQUEST_TIMEOUT_S = 20

# Client-side index: envelope padding around the query geometry, and paging
INDEX_PADDING_DEG = 0.15
INDEX_PAGE_SIZE = 2000
INDEX_MAX_PAGES = 25

# ----------------- BUFFER -----------------
DEFAULT_RADIUS_KM = 1.0
MIN_RADIUS_KM = 0.5
MAX_RADIUS_KM = 20.0
RADIUS_STEP_KM = 0.5
BUFFER_SEGMENTS = 64

# ----------------- SAVED QUERIES -----------------
MAX_SAVED_QUERIES = 5
SAVED_PALETTE = [
    "#FF6B6B",  # coral
    "#FFD166",  # amber
    "#06D6A0",  # green
    "#A78BFA",  # violet
    "#F472B6",  # pink
]

# ----------------- SYMBOLS -----------------
BUFFER_FILL = "#56C1FF"
BUFFER_OUTLINE = "#56C1FF"
EDITABLE_OUTLINE = "#FFFFFF"
DRAWN_FILL = "#F68B1F"
DRAWN_OUTLINE = "#F68B1F"
OUTLINE_WIDTH = 2

# ----------------- HIGHLIGHT -----------------
HIGHLIGHT_INTERVAL_MS = 60
HIGHLIGHT_DASH = (8, 4)
HIGHLIGHT_STEP = 1

# ----------------- LOCAL SETTINGS -----------------
SETTINGS_PATH = Path.home() / ".pop_explorer.json"

# viewer_style.py
# Shared colors and fonts for the Tk frames.

BG_MAIN = "#f0f2f5"
BG_TOOLBAR = "#2f3640"
BG_PANEL = "#ffffff"
BG_BUTTON = "#40739e"
FG_BUTTON = "#ffffff"
FG_TEXT = "#222222"
FG_SUBTEXT = "#555555"

FONT_HEADER = ("Segoe UI", 11, "bold")
FONT_TEXT = ("Segoe UI", 10)
FONT_MONO = ("Consolas", 9)
FONT_BUTTON = ("Segoe UI", 10, "bold")

# checkerboard drawn behind transparent pixels
CHECKER_LIGHT = (204, 204, 204, 255)
CHECKER_DARK = (153, 153, 153, 255)
CHECKER_SIZE = 8

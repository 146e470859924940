REFERENCE_WIDTH = 800
MIN_SLOT_PCT = 5.0
MAX_PCT = 100.0

SHAPE_RECTANGLE = "rectangle"
SHAPE_ELLIPSE = "ellipse"
# names used by older template files
SHAPE_ALIASES = {
    "rect": SHAPE_RECTANGLE,
    "rectangle": SHAPE_RECTANGLE,
    "square": SHAPE_RECTANGLE,
    "circle": SHAPE_ELLIPSE,
    "ellipse": SHAPE_ELLIPSE,
    "oval": SHAPE_ELLIPSE,
}

ALIGN_LEFT = "left"
ALIGN_CENTER = "center"
ALIGN_RIGHT = "right"
VALID_ALIGNS = (ALIGN_LEFT, ALIGN_CENTER, ALIGN_RIGHT)

TARGET_IMAGE = "image"
TARGET_TEXT = "text"
VALID_TARGETS = {TARGET_IMAGE, TARGET_TEXT}

ACTION_DRAG = "drag"
ACTION_RESIZE = "resize"
VALID_ACTIONS = {ACTION_DRAG, ACTION_RESIZE}

RESIZE_HANDLES = ("nw", "ne", "sw", "se")

MODE_EDIT = "edit"
MODE_PREVIEW = "preview"
VALID_MODES = {MODE_EDIT, MODE_PREVIEW}

QUICK_CENTER = "center"
QUICK_FULL_WIDTH = "full_width"
QUICK_FULL_HEIGHT = "full_height"
VALID_QUICK_ACTIONS = {QUICK_CENTER, QUICK_FULL_WIDTH, QUICK_FULL_HEIGHT}

PHOTO_PLACEHOLDER_LABEL = "PHOTO"
NAME_PLACEHOLDER_LABEL = "NAME HERE"

DEFAULT_IMAGE_RECT = (30.0, 30.0, 40.0, 40.0)
DEFAULT_TEXT_RECT = (10.0, 80.0, 80.0, 10.0)
DEFAULT_TEXT_COLOR = "#000000"
DEFAULT_FONT_SIZE = 24.0
DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_SAMPLE_NAME = "John Doe"

OUTPUT_SUFFIX = "_poster"
STANDARD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tif", ".tiff"}

import os
from pathlib import Path

# ======================
# Paths
# ======================
PACKAGE_DIR = Path(__file__).resolve().parent
ASSETS_DIR = PACKAGE_DIR / "assets"
GEO_DIR = Path(os.environ.get("CDI_DEWS_GEO_DIR", ASSETS_DIR / "geo"))

# ======================
# Storage
# ======================
DATABASE_URL = os.environ.get("CDI_DEWS_DATABASE_URL", "sqlite:///cdi_dews.db")

# ======================
# External services
# ======================
# Empty -> use the deterministic mock predictions
PREDICTIONS_URL = os.environ.get("CDI_DEWS_PREDICTIONS_URL", "")
PREDICTIONS_TIMEOUT = 30

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"
GOOGLE_TRANSLATE_API_KEY = os.environ.get("GOOGLE_TRANSLATE_API_KEY", "")
TRANSLATE_TIMEOUT = 15

# ======================
# Forecast window
# ======================
FORECAST_START = "2025-08-01"
FORECAST_MONTHS = 12
ACCURACY_DECAY_PER_MONTH = 5

# ======================
# Map
# ======================
MAP_STYLE = "open-street-map"
MAP_HEIGHT = 420
MASK_COLOR = "#f3f4f6"

# ======================
# UI
# ======================
APP_TITLE = "Drought Early Warning System"
LANGUAGES = {"en": "English", "so": "Somali", "aa": "Afar"}

# Dashboard state kept per session token
CONTROLLER_IDLE_SECONDS = int(os.environ.get("CDI_DEWS_CONTROLLER_IDLE_SECONDS", "3600"))
MAX_CONTROLLERS = 200

HOST = os.environ.get("CDI_DEWS_HOST", "0.0.0.0")
PORT = int(os.environ.get("CDI_DEWS_PORT", "8080"))
DEBUG = os.environ.get("CDI_DEWS_DEBUG", "0") == "1"

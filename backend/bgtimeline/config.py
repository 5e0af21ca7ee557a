import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    TESTING = False

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Storage (rooms snapshot on disk)
    DATA_DIR = os.environ.get("DATA_DIR", "./data")
    ROOMS_FILE = os.environ.get("ROOMS_FILE", "rooms.json")
    SAVE_DEBOUNCE_SEC = float(os.environ.get("SAVE_DEBOUNCE_SEC", "1.0"))

    # Stale rooms
    ROOM_MAX_AGE_SEC = int(os.environ.get("ROOM_MAX_AGE_SEC", str(24 * 60 * 60)))
    CLEANUP_INTERVAL_SEC = int(os.environ.get("CLEANUP_INTERVAL_SEC", str(30 * 60)))

    # Game
    MAX_PLAYERS = int(os.environ.get("MAX_PLAYERS", "8"))
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))
    MIN_DECK_SIZE = int(os.environ.get("MIN_DECK_SIZE", "30"))

    # Catalog (BoardGameGeek images via the geekdo JSON API)
    CATALOG_API_BASE = os.environ.get("CATALOG_API_BASE", "https://api.geekdo.com/api")
    CATALOG_FETCH_IMAGES = os.environ.get("CATALOG_FETCH_IMAGES", "1") == "1"
    CATALOG_CACHE_SEC = int(os.environ.get("CATALOG_CACHE_SEC", "3600"))
    CATALOG_TIMEOUT_SEC = float(os.environ.get("CATALOG_TIMEOUT_SEC", "15"))
    IMAGE_PROXY_HOST = os.environ.get("IMAGE_PROXY_HOST", "geekdo-images.com")

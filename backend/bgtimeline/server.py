from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path

from flask import Flask, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.catalog import CatalogProvider
from .game.persistence import RoomStore
from .game.registry import Catalog, RoomRegistry
from .realtime.handlers import register_socketio_handlers
from .routes.health import bp as health_bp
from .routes.images import bp as images_bp
from .routes.rooms import bp as rooms_bp

logger = logging.getLogger(__name__)


def _build_registry(app: Flask, catalog: Catalog | None) -> RoomRegistry:
    if catalog is None:
        catalog = CatalogProvider(
            api_base=app.config["CATALOG_API_BASE"],
            fetch_images=app.config["CATALOG_FETCH_IMAGES"],
            cache_ttl_sec=app.config["CATALOG_CACHE_SEC"],
            timeout_sec=app.config["CATALOG_TIMEOUT_SEC"],
        )

    store = RoomStore(
        Path(app.config["DATA_DIR"]) / app.config["ROOMS_FILE"],
        debounce_sec=app.config["SAVE_DEBOUNCE_SEC"],
    )

    registry = RoomRegistry(
        catalog=catalog,
        store=store,
        max_players=app.config["MAX_PLAYERS"],
        min_players=app.config["MIN_PLAYERS"],
        min_deck_size=app.config["MIN_DECK_SIZE"],
        room_max_age_sec=app.config["ROOM_MAX_AGE_SEC"],
    )
    registry.load()
    registry.cleanup_old_rooms()
    return registry


def _start_background_tasks(app: Flask, socketio: SocketIO, registry: RoomRegistry) -> None:
    interval = app.config["CLEANUP_INTERVAL_SEC"]

    def _cleanup_loop() -> None:
        while True:
            socketio.sleep(interval)
            try:
                registry.cleanup_old_rooms()
            except Exception:
                logger.exception("Room cleanup failed")

    socketio.start_background_task(_cleanup_loop)

    preload = getattr(registry.catalog, "preload", None)
    if preload is not None:
        logger.info("Preloading board games from BoardGameGeek...")
        socketio.start_background_task(preload)

    atexit.register(registry.flush)


def create_app(config_class=Config, catalog: Catalog | None = None) -> tuple[Flask, SocketIO]:
    dist_dir = Path(__file__).resolve().parents[2] / "client" / "dist"

    static_folder = str(dist_dir) if dist_dir.exists() else None
    static_url_path = "/" if dist_dir.exists() else None

    app = Flask(
        __name__,
        static_folder=static_folder,
        static_url_path=static_url_path,
    )
    app.config.from_object(config_class)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    env_async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if app.config.get("TESTING"):
        async_mode = "threading"
    elif env_async_mode:
        async_mode = env_async_mode
    else:
        # Default choice:
        # - Windows: threading (eventlet has known compatibility issues on newer Python)
        # - Python >= 3.13: threading (safer default)
        # - Otherwise: eventlet
        if sys.platform.startswith("win") or sys.version_info >= (3, 13):
            async_mode = "threading"
        else:
            async_mode = "eventlet"

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode,
    )

    registry = _build_registry(app, catalog)
    app.extensions["bgtimeline.registry"] = registry

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")
    app.register_blueprint(images_bp, url_prefix="/api")

    register_socketio_handlers(socketio, registry)

    if not app.config.get("TESTING"):
        _start_background_tasks(app, socketio, registry)

    if dist_dir.exists():
        @app.get("/")
        def index():
            return send_from_directory(dist_dir, "index.html")

        @app.get("/<path:path>")
        def static_proxy(path: str):
            file_path = dist_dir / path
            if file_path.exists() and file_path.is_file():
                return send_from_directory(dist_dir, path)
            return send_from_directory(dist_dir, "index.html")

    return app, socketio

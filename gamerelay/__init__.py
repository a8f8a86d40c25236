import logging
import os
from datetime import datetime
from pathlib import Path

from flask import Flask

from .jobs import Library
from .routes import bp as routes_bp

# Bind only localhost unless overridden
BIND = os.environ.get("BIND", "127.0.0.1")
PORT = int(os.environ.get("PORT", "5000"))
GAMERELAY_HOME = os.environ.get("GAMERELAY_HOME")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"

def ensure_root(home: str) -> Path:
    root = Path(home)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SystemExit(f"Cannot create data directory {home}: {e}")
    if not root.is_dir():
        raise SystemExit(f"Data directory is not a folder: {home}")
    return root

def configure_logging(home: Path, verbose: bool = False) -> Path:
    logs = Path(home) / "Logs"
    logs.mkdir(parents=True, exist_ok=True)
    log_file = logs / f"relay_{datetime.now():%Y%m%d}.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    return log_file

def create_app(home: str) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET", "dev-" + os.urandom(8).hex())
    app.config["RELAY_HOME"] = str(Path(home).absolute())
    app.config["APP_TITLE"] = "Game Relay"
    app.extensions["gamerelay"] = Library(Path(app.config["RELAY_HOME"]))

    app.register_blueprint(routes_bp)
    return app

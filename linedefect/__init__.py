"""Application factory for the defect tracker."""
from __future__ import annotations

from pathlib import Path

from flask import Flask

from .config import Config
from .defects import defects_bp
from .extensions import db
from .routes.auth import auth_bp


def create_app(config_object: type[Config] | Config | None = None) -> Flask:
    """Application factory used by Flask.

    Parameters
    ----------
    config_object: type[Config] | Config | None
        Optional configuration object to allow overriding defaults when
        creating the application.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config())

    configure_logging(app)
    register_extensions(app)
    register_blueprints(app)
    initialize_database(app)

    @app.route("/health")
    def health() -> tuple[str, int]:
        """Simple healthcheck endpoint."""
        return "OK", 200

    return app


def configure_logging(app: Flask) -> None:
    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())


def register_extensions(app: Flask) -> None:
    """Register Flask extensions."""
    db.init_app(app)


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(defects_bp, url_prefix="/defects")


def initialize_database(app: Flask) -> None:
    """Ensure the database is ready to use."""
    with app.app_context():
        Path(app.instance_path).mkdir(parents=True, exist_ok=True)
        db.create_all()
        app.logger.debug("Database ready; defect backend is %s", app.config["DEFECT_BACKEND"])

import os
from datetime import datetime, timezone

import click
from flask import Flask, jsonify, request, g, send_from_directory
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from app.extensions import db, migrate, cors
from app.models import Listing
from app.segments.segment_auth_routes import auth_bp
from app.segments.segment_market import market_bp
from app.segments.segment_messages import messages_bp
from app.segments.segment_users import users_bp
from app.services.category_schema import seed_default_categories
from app.utils.image_upload import MAX_IMAGES, MAX_IMAGE_BYTES
from app.utils.observability import init_sentry, install_request_observers


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except ValueError:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("APP_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("JWT_SECRET must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    # Basic config
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or "dev-secret"
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["UPLOAD_DIR"] = os.path.abspath(os.getenv("UPLOAD_DIR") or os.path.join(PROJECT_ROOT, "uploads"))
    # Room for a full batch of images plus the form fields around them
    app.config["MAX_CONTENT_LENGTH"] = MAX_IMAGES * MAX_IMAGE_BYTES + 1024 * 1024
    os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)

    # Database config
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        instance_dir = os.path.join(PROJECT_ROOT, "instance")
        os.makedirs(instance_dir, exist_ok=True)
        database_url = f"sqlite:///{os.path.join(instance_dir, 'classifieds.db').replace(os.sep, '/')}"
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_reset_on_return": "rollback",
                "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # CORS configuration
    cors_origins = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if env in ("prod", "production"):
        origins = cors_origins
    else:
        origins = cors_origins or DEFAULT_CORS_ORIGINS
    cors.init_app(app, resources={r"/api/*": {"origins": origins}}, supports_credentials=True)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    if _env_flag("AUTO_CREATE_SCHEMA", True):
        with app.app_context():
            db.create_all()
            seed_default_categories()

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        db.session.rollback()
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        rid = (getattr(g, "request_id", "") or "").strip()
        if rid:
            payload["trace_id"] = rid
        return jsonify(payload), 500

    app.register_blueprint(auth_bp)
    app.register_blueprint(market_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(messages_bp)

    @app.get("/health")
    def liveness():
        return jsonify({"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()})

    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            app.logger.exception("health_db_check_failed")
            db_state = "fail"
        return jsonify({
            "ok": db_state == "ok",
            "status": "OK" if db_state == "ok" else "DEGRADED",
            "service": "classifieds-backend",
            "env": env,
            "db": db_state,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename: str):
        return send_from_directory(app.config["UPLOAD_DIR"], filename)

    @app.cli.command("seed-categories")
    def seed_categories_command():
        created = seed_default_categories()
        click.echo(f"Seeded categories: {created} created")

    @app.cli.command("feature-listing")
    @click.argument("listing_id", type=int)
    @click.option("--off", "turn_off", is_flag=True, help="Remove the featured flag instead")
    def feature_listing_command(listing_id: int, turn_off: bool):
        listing = db.session.get(Listing, listing_id)
        if listing is None:
            raise click.ClickException(f"Listing {listing_id} not found.")
        listing.is_featured = not turn_off
        db.session.commit()
        app.logger.info("listing_featured_set listing_id=%s featured=%s", listing_id, listing.is_featured)
        click.echo(f"Listing {listing_id} featured={listing.is_featured}")

    return app

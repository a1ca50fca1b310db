# --- rental_admin/__init__.py ---
import logging

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ApiError
from .extensions import cors, db, jwt, migrate
from .utils.api import err


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("rental_admin").setLevel(level)
    app.logger.setLevel(level)


def _register_error_handlers(app):
    logger = logging.getLogger("rental_admin")

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        db.session.rollback()
        return err(e.message, e.status_code, e.data)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return err(e.description or e.name, e.code)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        logger.exception("database error")
        return err(f"Database error: {e.__class__.__name__}: {getattr(e, 'orig', None) or e}", 500)


def _register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return err(reason or "Missing authorization token", 401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return err(reason or "Invalid token", 401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return err("Token has expired", 401)


def create_app(config_class=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    config_class.init_app(app)
    app.json.sort_keys = False

    _configure_logging(app)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    migrate.init_app(app, db)
    app.extensions["mail_outbox"] = []

    _register_jwt_handlers()
    _register_error_handlers(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .category import bp as category_bp; app.register_blueprint(category_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .shipping import bp as shipping_bp; app.register_blueprint(shipping_bp)
    from .product import bp as product_bp; app.register_blueprint(product_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .analytics import bp as analytics_bp; app.register_blueprint(analytics_bp)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return {"success": True, "data": {"status": "ok"}, "message": "API running"}

    with app.app_context():
        db.create_all()

    app.logger.info("rental admin API ready (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split("://")[0])
    return app

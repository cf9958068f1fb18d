# backend/videgrenier/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External collaborators, one set per application
    from .services.email_service import build_mailer
    from .services.payment_service import build_payment_gateway
    from .services.upload_service import build_blob_store

    app.extensions["mailer"] = build_mailer(app.config)
    app.extensions["payment_gateway"] = build_payment_gateway(app.config)
    app.extensions["blob_store"] = build_blob_store(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.stock import stock_bp
    from .routes.sales import sales_bp
    from .routes.supplies import supplies_bp
    from .routes.reviews import reviews_bp
    from .routes.communications import newsletters_bp, contact_bp
    from .routes.payments import payments_bp
    from .routes.uploads import uploads_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(supplies_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(newsletters_bp)
    app.register_blueprint(contact_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(uploads_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

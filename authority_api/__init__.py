from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import click

from .config import get_config
from .errors import register_error_handlers
from authority.service import TokenAuthority
from authority_store.db_storage import DBStorage

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Token Authority API",
        "version": "1.0.0",
        "description": "Login, refresh-token rotation with reuse detection, logout and access-token admission.",
    },
    "basePath": "/",  # Blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    The database, revocation cache and TokenAuthority are built here and
    attached to app.extensions; nothing is shared between apps.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage = DBStorage(app.config["DATABASE_URL"], timeout=app.config["STORE_TIMEOUT_SECONDS"])
    storage.reload()
    app.extensions["db_storage"] = storage
    app.extensions["token_authority"] = TokenAuthority.from_config(app.config, storage)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    # This calls scoped_session.remove(), preventing connection leaks
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Token Authority API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    register_cli(app)
    return app


def register_cli(app: Flask) -> None:
    @app.cli.command("purge-expired")
    def purge_expired():
        """Delete token families past absolute expiry and stale revocations."""
        result = app.extensions["token_authority"].sweep()
        if not result.ok:
            raise click.ClickException(result.failure.message)
        report = result.value
        click.echo(f"purged {report.families} families, {report.revocations} revocations")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default=None)
    def create_admin(email, password, name):
        """Bootstrap an admin credential."""
        result = app.extensions["token_authority"].create_admin(email, password, name=name)
        if not result.ok:
            raise click.ClickException(result.failure.message)
        click.echo(f"created admin {result.value.id}")

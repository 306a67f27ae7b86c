from collections.abc import Mapping

from flask import Flask, jsonify
from flask_cors import CORS

from .extensions import db


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object("agendizo.config.Config")
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    if not app.config.get("RESEND_API_KEY"):
        app.logger.error("RESEND_API_KEY is not set; email delivery is disabled")
    if not app.config.get("STRIPE_SECRET_KEY"):
        app.logger.warning("STRIPE_SECRET_KEY is not set; checkout is disabled")

    db.init_app(app)

    # The Next.js frontend calls the API with the session cookie.
    CORS(app,
         origins=[app.config["APP_URL"]],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    from .routes import bp
    from .routes_dashboard import bp_dashboard
    from .routes_public import bp_public
    from .scheduling import register_commands

    app.register_blueprint(bp, url_prefix="/api")
    app.register_blueprint(bp_dashboard, url_prefix="/api")
    app.register_blueprint(bp_public, url_prefix="/api")

    register_error_handlers(app)
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(_exc):
        return jsonify({"error": "not_found", "message": "resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_exc):
        return jsonify({"error": "method_not_allowed"}), 405

    @app.errorhandler(500)
    def internal_error(exc):
        app.logger.exception("Unhandled server error", exc_info=exc)
        return jsonify({"error": "server_error", "message": "Erro interno do servidor"}), 500

from __future__ import annotations

from flask import Flask

from . import db
from .config import load_settings
from .error_handlers import register_error_handlers
from .models import Base
from .routes.admin import bp as admin_bp
from .routes.health import bp as health_bp
from .routes.reports import bp as reports_bp
from .routes.tickets import bp as tickets_bp
from .services.draws import DrawRepository


def create_app() -> Flask:
    settings = load_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.flask.secret_key
    app.config["DEBUG"] = settings.flask.debug

    engine = db.get_engine()
    if engine.url.render_as_string(hide_password=False) != settings.database_url:
        engine = db.configure_engine(settings.database_url)
    Base.metadata.create_all(engine)
    DrawRepository().seed_defaults()

    app.register_blueprint(health_bp)
    app.register_blueprint(tickets_bp, url_prefix="/tickets")
    app.register_blueprint(admin_bp, url_prefix="/admin/api")
    app.register_blueprint(reports_bp, url_prefix="/reports")
    register_error_handlers(app)

    return app


if __name__ == "__main__":
    create_app().run()

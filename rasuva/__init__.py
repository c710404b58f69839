# rasuva/__init__.py
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import event, text

from .extensions import db, migrate  # shared instances

load_dotenv()

DEFAULT_MAX_TEXT_CHARS = 2_000_000


def create_app(test_config=None):
    app = Flask(__name__)

    # ---- DB config ----
    db_url = os.getenv("DATABASE_URL", "").strip()
    if test_config and test_config.get("SQLALCHEMY_DATABASE_URI"):
        db_url = test_config["SQLALCHEMY_DATABASE_URI"]
    if not db_url:
        raise RuntimeError("DATABASE_URL is not set")
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"pool_pre_ping": True})
    app.config["RASUVA_DB_SCHEMA"] = os.getenv("RASUVA_DB_SCHEMA", "").strip() or None
    app.config["RASUVA_MAX_TEXT_CHARS"] = int(
        os.getenv("RASUVA_MAX_TEXT_CHARS", DEFAULT_MAX_TEXT_CHARS)
    )
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    db.init_app(app)
    migrate.init_app(app, db)

    # Point every new Postgres connection at the configured schema
    schema = app.config["RASUVA_DB_SCHEMA"]
    with app.app_context():
        if schema and db.engine.dialect.name == "postgresql":
            def _set_search_path(dbapi_conn, _rec):
                cur = dbapi_conn.cursor()
                cur.execute(f'SET search_path TO "{schema}", public')
                cur.close()
            event.listen(db.engine, "connect", _set_search_path)

    # Lightweight DB health
    @app.get("/api/health/db")
    def health_db():
        try:
            db.session.execute(text("SELECT 1")).scalar()
        except Exception as e:
            app.logger.warning(f"DB health check failed: {e}")
            return jsonify(ok=False, error="database unavailable"), 503
        return jsonify(ok=True, dialect=db.engine.dialect.name, schema=schema)

    # ---- Blueprints (register ONLY inside the factory) ----
    from rasuva.imports import imports_api_bp

    app.register_blueprint(imports_api_bp)

    from .routes_root import root_bp
    app.register_blueprint(root_bp)

    return app

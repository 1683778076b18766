"""
Main Flask application entry point for SimpleCaptcha
"""
import logging
import os

from flask import Flask, jsonify, request
from config import Config
from models import db
from utils.challenge_store import create_challenge_store


def create_app(config_class=Config):
    """Application factory pattern. DB init runs inside app_context; non-fatal on failure."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    app.extensions['captcha_store'] = create_challenge_store(app.config)

    @app.errorhandler(500)
    def handle_500_error(e):
        if request.path.startswith("/captcha/"):
            return jsonify({"success": False, "message": "Internal server error. Please try again later."}), 500
        return e

    # Create tables and seed only inside app context; do not crash if DB temporarily unavailable
    with app.app_context():
        try:
            db.create_all()
            seed_settings()
        except Exception as e:
            logging.getLogger(__name__).warning("Database init/seed skipped (non-fatal): %s", e)

    from routes import captcha_bp
    app.register_blueprint(captcha_bp)

    return app


def seed_settings():
    """Store default captcha settings for any option that has no row yet."""
    from flask import current_app
    from utils.settings_helper import seed_captcha_settings

    seed_captcha_settings(current_app.config.get("CAPTCHA_DEFAULTS", {}))
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# WSGI entry point (Railway/Render/cPanel): gunicorn app:app
app = create_app()
application = app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "false").lower() in ("true", "1"))

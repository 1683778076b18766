import json
import os

# app.py builds a module-level app on import; keep it off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CAPTCHA_STORE", "memory")

import pytest

from app import create_app
from config import TestingConfig
from models import db
from utils.challenge_store import MemoryChallengeStore
from utils.settings_helper import CaptchaSettings, set_setting


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store():
    return MemoryChallengeStore()


@pytest.fixture
def configure_captcha(app):
    """Write captcha options into the settings table, e.g. configure_captcha(enabled=True)."""
    def _configure(**values):
        with app.app_context():
            for name, value in values.items():
                if isinstance(value, bool):
                    value = '1' if value else '0'
                elif isinstance(value, dict):
                    value = json.dumps(value)
                set_setting(f'captcha_{name}', str(value))
            db.session.commit()
    return _configure


def make_settings(**overrides):
    values = {
        "enabled": True,
        "type": "math",
        "difficulty": "easy",
        "case_sensitive": False,
        "length": 5,
        "expiry": 300,
    }
    values.update(overrides)
    return CaptchaSettings.from_mapping(values)

"""
Settings helper: read app settings from DB for use in app context and routes.
Captcha settings are read once per request into an immutable snapshot.
"""
import json
from dataclasses import dataclass, field
from types import MappingProxyType

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.settings import Settings
from utils.exceptions import StoreUnavailable

CAPTCHA_TYPES = ('math', 'image')
CAPTCHA_DIFFICULTIES = ('easy', 'medium', 'hard')
MIN_LENGTH, MAX_LENGTH = 4, 8
MIN_EXPIRY, MAX_EXPIRY = 60, 900

# settings table key -> CaptchaSettings field
CAPTCHA_SETTING_KEYS = {
    'captcha_enabled': 'enabled',
    'captcha_type': 'type',
    'captcha_difficulty': 'difficulty',
    'captcha_case_sensitive': 'case_sensitive',
    'captcha_length': 'length',
    'captcha_expiry': 'expiry',
    'captcha_protected_forms': 'protected_forms',
}


def get_setting(key, default=''):
    """Get setting value by key. Safe to call from any request context."""
    try:
        setting = db.session.get(Settings, key)
        return setting.value if setting and setting.value is not None else default
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not read setting %s, using default", key, exc_info=True)
        return default


def set_setting(key, value, description=''):
    """Set or update setting value. Caller commits."""
    setting = db.session.get(Settings, key)
    if setting:
        setting.value = value
        if description:
            setting.description = description
    else:
        setting = Settings(key=key, value=value, description=description)
        db.session.add(setting)
    return setting


def _as_bool(value, default):
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'on', 'yes')


def _as_int(value, default, low, high):
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = int(default)
    return max(low, min(high, number))


def _as_forms(value, default):
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else None
        except ValueError:
            value = None
    if not isinstance(value, dict):
        value = default or {}
    return MappingProxyType({str(k): _as_bool(v, False) for k, v in value.items()})


@dataclass(frozen=True)
class CaptchaSettings:
    """Snapshot of captcha settings for a single request."""
    enabled: bool = False
    type: str = 'math'
    difficulty: str = 'easy'
    case_sensitive: bool = False
    length: int = 5
    expiry_seconds: int = 300
    protected_forms: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, values, defaults=None):
        """
        Build a snapshot from raw values (strings from the settings table or
        native types). Missing values fall back to ``defaults``; out-of-range
        values are clamped and unknown choices fall back to math / easy.
        """
        defaults = defaults or {}

        def pick(name):
            value = values.get(name)
            return defaults.get(name) if value in (None, '') else value

        challenge_type = str(pick('type') or 'math').strip().lower()
        difficulty = str(pick('difficulty') or 'easy').strip().lower()
        return cls(
            enabled=_as_bool(pick('enabled'), False),
            type=challenge_type if challenge_type in CAPTCHA_TYPES else 'math',
            difficulty=difficulty if difficulty in CAPTCHA_DIFFICULTIES else 'easy',
            case_sensitive=_as_bool(pick('case_sensitive'), False),
            length=_as_int(pick('length'), 5, MIN_LENGTH, MAX_LENGTH),
            expiry_seconds=_as_int(pick('expiry'), 300, MIN_EXPIRY, MAX_EXPIRY),
            protected_forms=_as_forms(pick('protected_forms'), defaults.get('protected_forms')),
        )


def load_captcha_settings():
    """
    Read captcha settings from the settings table, once, into a CaptchaSettings.
    A missing row falls back to CAPTCHA_DEFAULTS; a failed read raises
    StoreUnavailable and must be treated as "not verified", never as "disabled".
    """
    try:
        rows = Settings.query.filter(Settings.key.in_(list(CAPTCHA_SETTING_KEYS))).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable(f"Could not read captcha settings: {e}") from e
    stored = {row.key: row.value for row in rows}
    values = {name: stored.get(key) for key, name in CAPTCHA_SETTING_KEYS.items()}
    return CaptchaSettings.from_mapping(values, current_app.config.get('CAPTCHA_DEFAULTS', {}))


def is_form_protected(settings, form_name):
    """True when captcha is enabled and the named form is flagged for protection."""
    if not settings.enabled:
        return False
    return bool(settings.protected_forms.get(form_name, False))


def seed_captcha_settings(defaults):
    """Insert a settings row for every captcha option that has none yet."""
    for key, name in CAPTCHA_SETTING_KEYS.items():
        if db.session.get(Settings, key) is not None or name not in defaults:
            continue
        value = defaults[name]
        if isinstance(value, bool):
            value = '1' if value else '0'
        elif isinstance(value, dict):
            value = json.dumps(value)
        else:
            value = str(value)
        set_setting(key, value, f'Captcha {name.replace("_", " ")}')

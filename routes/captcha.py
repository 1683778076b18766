"""
CAPTCHA routes: generate a challenge, verify an answer, expose frontend config.
"""
from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from models import db
from utils.captcha_helper import generate_challenge
from utils.captcha_verifier import verify_challenge
from utils.challenge_store import get_challenge_store
from utils.exceptions import ValidationError, StoreUnavailable
from utils.settings_helper import load_captcha_settings, is_form_protected

captcha_bp = Blueprint('captcha', __name__, url_prefix='/captcha')

CAPTCHA_INVALID_MSG = "Verification failed. Please try again."
CAPTCHA_GENERATE_FAIL_MSG = "Failed to generate security check. Please try again."
CAPTCHA_UNAVAILABLE_MSG = "Security check is temporarily unavailable. Please try again later."


def _request_data():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else request.form


def _require_string(data, field):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        return None, f"The {field} field is required."
    return value, None


def parse_verify_request(data, id_field='id', answer_field='answer'):
    """Return (captcha_id, answer) or raise ValidationError naming the bad fields."""
    captcha_id, id_error = _require_string(data, id_field)
    answer, answer_error = _require_string(data, answer_field)
    errors = {}
    if id_error:
        errors[id_field] = id_error
    if answer_error:
        errors[answer_field] = answer_error
    if errors:
        raise ValidationError("Invalid captcha request.", errors)
    return captcha_id.strip(), answer


def captcha_required(form_name):
    """
    Decorator for form views: when ``form_name`` is protected, the request must
    carry a valid captcha_id + captcha_answer pair or it is rejected with a 400.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                settings = load_captcha_settings()
            except StoreUnavailable as e:
                current_app.logger.warning(f"Captcha settings unavailable, rejecting {form_name}: {e.message}")
                return jsonify({"success": False, "message": CAPTCHA_INVALID_MSG}), 400
            if not is_form_protected(settings, form_name):
                return f(*args, **kwargs)

            data = _request_data()
            captcha_id = str(data.get('captcha_id') or '').strip()
            captcha_answer = data.get('captcha_answer') or ''
            if not verify_challenge(captcha_id, captcha_answer, settings, get_challenge_store()):
                return jsonify({"success": False, "message": CAPTCHA_INVALID_MSG}), 400
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@captcha_bp.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"success": False, "message": e.message, "errors": e.errors}), 400


@captcha_bp.errorhandler(StoreUnavailable)
def handle_store_unavailable(e):
    current_app.logger.error(f"Captcha store unavailable: {e.message}", exc_info=True)
    db.session.rollback()
    return jsonify({"success": False, "message": CAPTCHA_UNAVAILABLE_MSG}), 500


@captcha_bp.route('/generate', methods=['GET'])
def api_generate():
    """Return a new challenge, or only {enabled: false} when captcha is off."""
    settings = load_captcha_settings()
    if not settings.enabled:
        return jsonify({"enabled": False})

    store = get_challenge_store()
    try:
        store.purge_expired()
        challenge = generate_challenge(
            settings,
            store,
            ambiguous_chars=current_app.config.get('CAPTCHA_AMBIGUOUS_CHARS', 'IOilo01'),
        )
    except StoreUnavailable as e:
        current_app.logger.error(f"Error generating CAPTCHA: {e.message}", exc_info=True)
        db.session.rollback()
        return jsonify({"success": False, "message": CAPTCHA_GENERATE_FAIL_MSG}), 500

    return jsonify({"enabled": True, **challenge.to_dict()})


@captcha_bp.route('/verify', methods=['POST'])
def api_verify():
    """Check an answer. Wrong, expired and unknown challenges all give valid: false."""
    captcha_id, answer = parse_verify_request(_request_data())
    try:
        settings = load_captcha_settings()
    except StoreUnavailable as e:
        current_app.logger.warning(f"Captcha settings unavailable during verify, rejecting: {e.message}")
        return jsonify({"valid": False})
    valid = verify_challenge(captcha_id, answer, settings, get_challenge_store())
    return jsonify({"valid": valid})


@captcha_bp.route('/config', methods=['GET'])
def api_config():
    """Frontend configuration: whether captcha is on and which type to expect."""
    settings = load_captcha_settings()
    if not settings.enabled:
        return jsonify({"enabled": False})
    return jsonify({"enabled": True, "type": settings.type})


@captcha_bp.route('/forms/<form_name>', methods=['GET'])
def api_form_protected(form_name):
    """Whether the named form must show a captcha."""
    return jsonify({"form": form_name, "protected": is_form_protected(load_captcha_settings(), form_name)})

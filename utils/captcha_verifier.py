"""
CAPTCHA answer verification. One-time use: the challenge is removed on the
first attempt, right or wrong.
"""
import logging
import time

from utils.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


def answers_match(entry, candidate) -> bool:
    """Compare a submitted answer with the stored one under the entry's case policy."""
    if entry.case_sensitive:
        return candidate == entry.answer
    return candidate.strip().upper() == entry.answer.upper()


def verify_challenge(captcha_id, candidate, settings, store) -> bool:
    """
    True only for the first correct answer to a live challenge.
    Unknown, used, expired and wrong all give False. When captcha is
    disabled every answer passes so switching it off never blocks a form.
    """
    if not settings.enabled:
        return True
    if not captcha_id or candidate is None:
        return False

    try:
        entry = store.take(str(captcha_id))
    except StoreUnavailable as e:
        logger.warning("Captcha store unavailable during verify, rejecting: %s", e)
        return False

    if entry is None:
        return False
    if entry.is_expired(time.time()):
        return False
    return answers_match(entry, str(candidate))

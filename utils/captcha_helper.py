"""
CAPTCHA challenge generation: math questions and distorted-text images.
Generated answers go straight into the challenge store; only the id and the
presentation are handed back to the caller.
"""
import base64
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from utils.captcha_image import render_captcha_image
from utils.challenge_store import ChallengeEntry

logger = logging.getLogger(__name__)

DEFAULT_AMBIGUOUS_CHARS = "IOilo01"
IMAGE_QUESTION = "Enter the characters shown"

# difficulty -> (lowest operand, highest operand, allowed operators)
MATH_DIFFICULTY = {
    'easy': (1, 10, ('+',)),
    'medium': (5, 20, ('+', '-')),
    'hard': (10, 99, ('+', '-', '*')),
}

_OPERATIONS = {
    '+': lambda a, b: a + b,
    '-': lambda a, b: a - b,
    '*': lambda a, b: a * b,
}

_rng = secrets.SystemRandom()


@dataclass(frozen=True)
class Challenge:
    """What the end user gets to see. The expected answer is never part of it."""
    id: str
    type: str
    question: str
    image: Optional[bytes] = None

    def image_data_uri(self) -> Optional[str]:
        if self.image is None:
            return None
        return "data:image/png;base64," + base64.b64encode(self.image).decode("ascii")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "question": self.question,
            "image": self.image_data_uri(),
        }


def new_captcha_id() -> str:
    """32 URL-safe random characters."""
    return secrets.token_urlsafe(24)


def build_math_problem(num1: int, num2: int, operator: str) -> tuple[str, str]:
    """
    Return (question_text, answer) for the given operands.
    Subtraction swaps operands so the answer is never negative.
    """
    if operator not in _OPERATIONS:
        raise ValueError(f"Unsupported operator: {operator!r}")
    if operator == '-' and num2 > num1:
        num1, num2 = num2, num1
    answer = _OPERATIONS[operator](num1, num2)
    return f"{num1} {operator} {num2} = ?", str(answer)


def create_math_captcha(difficulty: str = 'easy') -> tuple[str, str]:
    """Pick operands and operator for ``difficulty``. Returns (question_text, answer)."""
    low, high, operators = MATH_DIFFICULTY.get(difficulty, MATH_DIFFICULTY['easy'])
    num1 = _rng.randint(low, high)
    num2 = _rng.randint(low, high)
    operator = _rng.choice(operators)
    return build_math_problem(num1, num2, operator)


def image_alphabet(case_sensitive: bool, ambiguous_chars: str = DEFAULT_AMBIGUOUS_CHARS) -> str:
    """Uppercase letters and digits, plus lowercase when case matters, minus look-alikes."""
    letters = string.ascii_letters if case_sensitive else string.ascii_uppercase
    return ''.join(c for c in letters + string.digits if c not in ambiguous_chars)


def create_image_text(length: int, case_sensitive: bool,
                      ambiguous_chars: str = DEFAULT_AMBIGUOUS_CHARS) -> str:
    alphabet = image_alphabet(case_sensitive, ambiguous_chars)
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_challenge(settings, store, ambiguous_chars=DEFAULT_AMBIGUOUS_CHARS) -> Challenge:
    """
    Create a challenge of the configured type and register its answer in ``store``.
    Store failures propagate as StoreUnavailable: no challenge is returned
    unless its answer was stored.
    """
    captcha_id = new_captcha_id()

    if settings.type == 'image':
        text = create_image_text(settings.length, settings.case_sensitive, ambiguous_chars)
        answer = text if settings.case_sensitive else text.upper()
        entry = ChallengeEntry(answer=answer, case_sensitive=settings.case_sensitive, captcha_type='image')
        challenge = Challenge(id=captcha_id, type='image', question=IMAGE_QUESTION,
                              image=render_captcha_image(text))
    else:
        question, answer = create_math_captcha(settings.difficulty)
        entry = ChallengeEntry(answer=answer, captcha_type='math')
        challenge = Challenge(id=captcha_id, type='math', question=question)

    store.put(captcha_id, entry, ttl=settings.expiry_seconds)
    logger.debug("Issued %s captcha %s...", challenge.type, captcha_id[:8])
    return challenge

"""
Distorted-text CAPTCHA image rendering with Pillow.
"""
import io
import secrets

from PIL import Image, ImageDraw, ImageFont

IMAGE_WIDTH = 180
IMAGE_HEIGHT = 60
MAX_FONT_SIZE = 28
MIN_FONT_SIZE = 12
NOISE_DOTS = 100
NOISE_LINES = 5
# Horizontal room left for per-character jitter
JITTER_X = 2

BACKGROUND_COLOR = (255, 255, 255)
TEXT_COLOR = (50, 50, 50)
DOT_COLOR = (150, 150, 150)
LINE_COLOR = (200, 200, 200)

_rng = secrets.SystemRandom()


def _load_font(size):
    try:
        return ImageFont.load_default(size=size)
    except (AttributeError, TypeError, ImportError):
        # Pillow without FreeType only ships the small bitmap font
        return ImageFont.load_default()


def glyph_width(font, char):
    left, _, right, _ = font.getbbox(char)
    return right - left


def char_advance(length):
    """Horizontal slot each character gets."""
    return (IMAGE_WIDTH - 20) // max(length, 1)


def fit_font(text, advance):
    """Largest font up to MAX_FONT_SIZE whose widest glyph in ``text`` fits its slot with jitter room."""
    size = MAX_FONT_SIZE
    font = _load_font(size)
    limit = advance - 2 * JITTER_X
    while size > MIN_FONT_SIZE and text and max(glyph_width(font, c) for c in text) > limit:
        size -= 1
        font = _load_font(size)
    return font


def render_captcha_image(text: str) -> bytes:
    """Render ``text`` with per-character jitter over dot and line noise. Returns PNG bytes."""
    image = Image.new('RGB', (IMAGE_WIDTH, IMAGE_HEIGHT), BACKGROUND_COLOR)
    draw = ImageDraw.Draw(image)
    advance = char_advance(len(text))
    font = fit_font(text, advance)

    for _ in range(NOISE_DOTS):
        draw.point((_rng.randint(0, IMAGE_WIDTH - 1), _rng.randint(0, IMAGE_HEIGHT - 1)), fill=DOT_COLOR)

    for _ in range(NOISE_LINES):
        start = (_rng.randint(0, IMAGE_WIDTH), _rng.randint(0, IMAGE_HEIGHT))
        end = (_rng.randint(0, IMAGE_WIDTH), _rng.randint(0, IMAGE_HEIGHT))
        draw.line([start, end], fill=LINE_COLOR, width=1)

    # Fixed slots so each character can jitter without touching its neighbours
    x = (IMAGE_WIDTH - advance * len(text)) // 2
    for char in text:
        left, top, right, bottom = draw.textbbox((0, 0), char, font=font)
        char_x = x - left + (advance - (right - left)) // 2 + _rng.randint(-JITTER_X, JITTER_X)
        char_y = (IMAGE_HEIGHT - (bottom - top)) // 2 - top + _rng.randint(-5, 5)
        draw.text((char_x, char_y), char, font=font, fill=TEXT_COLOR)
        x += advance

    buf = io.BytesIO()
    image.save(buf, format='PNG')
    return buf.getvalue()

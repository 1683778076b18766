"""
Errors raised by the captcha core and translated to HTTP responses by the routes.
"""


class CaptchaError(Exception):
    """Base class for captcha errors"""

    def __init__(self, message):
        self.message = message
        super().__init__(self.message)


class ValidationError(CaptchaError):
    """Malformed request, e.g. missing id or answer. Surfaced as a 400."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}


class StoreUnavailable(CaptchaError):
    """Backing challenge store could not be reached."""

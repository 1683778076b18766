"""
Routes package for the SimpleCaptcha application
"""
# Export blueprints for registration in app.py
from routes.captcha import captcha_bp

__all__ = [
    'captcha_bp',
]

"""
Models package for the SimpleCaptcha application
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Import all models here to ensure they're registered
from models.settings import Settings
from models.captcha_challenge import CaptchaChallenge

__all__ = [
    'db',
    'Settings',
    'CaptchaChallenge',
]

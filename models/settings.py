"""
Key/value application settings. Captcha options are stored here as strings.
"""
from models import db
from datetime import datetime


class Settings(db.Model):
    """One row per setting key"""
    __tablename__ = 'settings'

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=True)
    description = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Settings {self.key}>'

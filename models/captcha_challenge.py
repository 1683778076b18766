"""
Pending CAPTCHA challenges (PostgreSQL-compatible).
Backs the database challenge store; rows are deleted on first verification.
"""
from models import db


class CaptchaChallenge(db.Model):
    """
    One pending challenge. Expiry is a UTC epoch timestamp so the same value
    travels unchanged between the database, memory and redis stores.
    """
    __tablename__ = 'captcha_challenge'

    captcha_id = db.Column(db.String(64), primary_key=True)
    captcha_type = db.Column(db.String(16), nullable=False, default='math')
    captcha_answer = db.Column(db.String(32), nullable=False)
    case_sensitive = db.Column(db.Boolean, nullable=False, default=False)
    captcha_expires_at = db.Column(db.Float, nullable=False, index=True)

    def __repr__(self):
        return f'<CaptchaChallenge {self.captcha_id[:8]}...>'

"""
Captcha core: settings snapshot, challenge stores, generation and verification.
"""

"""
Gunicorn config: bind to 0.0.0.0 and PORT for Railway/Render.
More than one worker needs CAPTCHA_STORE=database or redis; the memory
store is private to each worker.
"""
import os

bind = "0.0.0.0:{}".format(os.environ.get("PORT", "8080"))
workers = int(os.environ.get("WEB_CONCURRENCY", "1"))
threads = 2
timeout = 30

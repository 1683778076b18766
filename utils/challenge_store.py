"""
Challenge stores: hold pending CAPTCHA answers keyed by challenge id.

Every store offers the same two calls:
  put(captcha_id, entry, ttl)  -> store entry, expiring ttl seconds from now
  take(captcha_id)             -> remove and return entry (expired or not), or None

``take`` is atomic per id: when several requests race on one id, at most one
of them gets the entry back. Use the database or redis store when more than
one worker process serves requests.
"""
import heapq
import json
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Optional

import redis
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.captcha_challenge import CaptchaChallenge
from utils.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "captcha:"


@dataclass(frozen=True)
class ChallengeEntry:
    """Server-side half of a challenge. Never sent to the client."""
    answer: str
    case_sensitive: bool = False
    captcha_type: str = "math"
    expiry: float = 0.0

    def is_expired(self, now=None) -> bool:
        return (time.time() if now is None else now) > self.expiry


class ChallengeStore:
    """Interface shared by all backing stores."""

    def put(self, captcha_id: str, entry: ChallengeEntry, ttl: int) -> None:
        raise NotImplementedError

    def take(self, captcha_id: str) -> Optional[ChallengeEntry]:
        raise NotImplementedError

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        return 0


class MemoryChallengeStore(ChallengeStore):
    """
    Per-process dict guarded by a lock. Expired entries are evicted on put by
    popping a heap of (expiry, id), so each call only touches what has expired.
    Only valid for a single worker process.
    """

    def __init__(self):
        self._items: dict[str, ChallengeEntry] = {}
        self._expiries: list[tuple[float, str]] = []
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._items)

    def put(self, captcha_id, entry, ttl):
        now = time.time()
        with self._lock:
            self._purge_locked(now)
            stored = replace(entry, expiry=now + ttl)
            self._items[captcha_id] = stored
            heapq.heappush(self._expiries, (stored.expiry, captcha_id))

    def take(self, captcha_id):
        with self._lock:
            return self._items.pop(captcha_id, None)

    def purge_expired(self):
        with self._lock:
            return self._purge_locked(time.time())

    def _purge_locked(self, now):
        removed = 0
        while self._expiries and self._expiries[0][0] < now:
            expiry, cid = heapq.heappop(self._expiries)
            # Skip records left behind by take() or by an overwrite with a later expiry
            item = self._items.get(cid)
            if item is not None and item.expiry == expiry:
                del self._items[cid]
                removed += 1
        return removed


class DatabaseChallengeStore(ChallengeStore):
    """
    Challenges as rows of captcha_challenge. A row is handed out only to the
    request whose DELETE actually removed it.
    """

    def put(self, captcha_id, entry, ttl):
        try:
            row = db.session.get(CaptchaChallenge, captcha_id)
            if row is None:
                row = CaptchaChallenge(captcha_id=captcha_id)
                db.session.add(row)
            row.captcha_type = entry.captcha_type
            row.captcha_answer = entry.answer
            row.case_sensitive = entry.case_sensitive
            row.captcha_expires_at = time.time() + ttl
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(f"Could not store captcha challenge: {e}") from e

    def take(self, captcha_id):
        try:
            row = db.session.get(CaptchaChallenge, captcha_id)
            if row is None:
                return None
            entry = ChallengeEntry(
                answer=row.captcha_answer,
                case_sensitive=bool(row.case_sensitive),
                captcha_type=row.captcha_type,
                expiry=float(row.captcha_expires_at),
            )
            db.session.expunge(row)
            deleted = self._delete_row(captcha_id)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(f"Could not read captcha challenge: {e}") from e
        # Another request consumed it between our SELECT and DELETE
        if deleted != 1:
            return None
        return entry

    def _delete_row(self, captcha_id):
        """DELETE by primary key; the rowcount tells whether this request won."""
        return CaptchaChallenge.query.filter_by(captcha_id=captcha_id).delete(synchronize_session=False)

    def purge_expired(self):
        try:
            removed = CaptchaChallenge.query.filter(
                CaptchaChallenge.captcha_expires_at < time.time()
            ).delete(synchronize_session=False)
            db.session.commit()
            return removed
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(f"Could not purge captcha challenges: {e}") from e


class RedisChallengeStore(ChallengeStore):
    """
    Shared store for multi-instance deployments. Key ``captcha:<id>`` holds
    JSON ``{answer, expiry, case_sensitive, type}`` with a native TTL.
    """

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_url(cls, url):
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=2))

    @staticmethod
    def _key(captcha_id):
        return f"{REDIS_KEY_PREFIX}{captcha_id}"

    def put(self, captcha_id, entry, ttl):
        ttl = max(1, int(ttl))
        payload = json.dumps({
            "answer": entry.answer,
            "expiry": time.time() + ttl,
            "case_sensitive": entry.case_sensitive,
            "type": entry.captcha_type,
        })
        try:
            self._client.set(self._key(captcha_id), payload, ex=ttl)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not store captcha challenge: {e}") from e

    def take(self, captcha_id):
        key = self._key(captcha_id)
        try:
            try:
                raw = self._client.getdel(key)
            except redis.exceptions.ResponseError as e:
                if "unknown command" not in str(e).lower():
                    raise
                # Servers older than 6.2 have no GETDEL; MULTI keeps it atomic
                pipeline = self._client.pipeline(transaction=True)
                pipeline.get(key)
                pipeline.delete(key)
                raw = pipeline.execute()[0]
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f"Could not read captcha challenge: {e}") from e
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return ChallengeEntry(
                answer=str(data["answer"]),
                case_sensitive=bool(data.get("case_sensitive", False)),
                captcha_type=data.get("type", "math"),
                expiry=float(data["expiry"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed captcha payload under %s", key[:16])
            return None


def create_challenge_store(config):
    """Build the store named by CAPTCHA_STORE."""
    backend = config.get("CAPTCHA_STORE", "database")
    if backend == "memory":
        return MemoryChallengeStore()
    if backend == "redis":
        return RedisChallengeStore.from_url(config["REDIS_URL"])
    if backend == "database":
        return DatabaseChallengeStore()
    raise ValueError(f"Unknown CAPTCHA_STORE backend: {backend!r}")


def get_challenge_store() -> ChallengeStore:
    """Store registered on the current app by create_app."""
    return current_app.extensions["captcha_store"]

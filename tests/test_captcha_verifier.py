import time

import pytest

from tests.conftest import make_settings
from utils.captcha_helper import build_math_problem, generate_challenge
from utils.captcha_verifier import verify_challenge
from utils.challenge_store import ChallengeEntry, ChallengeStore
from utils.exceptions import StoreUnavailable


class UnreachableStore(ChallengeStore):

    def put(self, captcha_id, entry, ttl):
        raise StoreUnavailable("store is down")

    def take(self, captcha_id):
        raise StoreUnavailable("store is down")


def test_math_example_is_one_time(store):
    question, answer = build_math_problem(3, 7, '+')
    assert question == "3 + 7 = ?"
    store.put("example", ChallengeEntry(answer=answer), ttl=300)

    settings = make_settings()
    assert verify_challenge("example", "10", settings, store) is True
    assert verify_challenge("example", "10", settings, store) is False


def test_generated_challenge_verifies_once(store):
    settings = make_settings(difficulty="hard")
    challenge = generate_challenge(settings, store)
    answer = store._items[challenge.id].answer
    assert verify_challenge(challenge.id, answer, settings, store) is True
    assert verify_challenge(challenge.id, answer, settings, store) is False


def test_wrong_answer_consumes_challenge(store):
    settings = make_settings()
    store.put("cid", ChallengeEntry(answer="10"), ttl=300)
    assert verify_challenge("cid", "11", settings, store) is False
    assert verify_challenge("cid", "10", settings, store) is False


def test_expired_challenge_rejected(store, monkeypatch):
    settings = make_settings()
    store.put("late", ChallengeEntry(answer="10"), ttl=60)
    store.put("early", ChallengeEntry(answer="10"), ttl=60)

    assert verify_challenge("early", "10", settings, store) is True

    later = time.time() + 61
    monkeypatch.setattr(time, "time", lambda: later)
    assert verify_challenge("late", "10", settings, store) is False


def test_case_insensitive_ignores_case_and_whitespace(store):
    settings = make_settings()
    store.put("img", ChallengeEntry(answer="AB3KZ", captcha_type="image"), ttl=300)
    assert verify_challenge("img", "  ab3kz \n", settings, store) is True


def test_case_sensitive_requires_exact_match(store):
    settings = make_settings(case_sensitive=True)
    store.put("a", ChallengeEntry(answer="aB3kZ", case_sensitive=True), ttl=300)
    store.put("b", ChallengeEntry(answer="aB3kZ", case_sensitive=True), ttl=300)
    store.put("c", ChallengeEntry(answer="aB3kZ", case_sensitive=True), ttl=300)
    assert verify_challenge("a", "AB3KZ", settings, store) is False
    assert verify_challenge("b", " aB3kZ", settings, store) is False
    assert verify_challenge("c", "aB3kZ", settings, store) is True


def test_stored_case_policy_wins_over_current_settings(store):
    store.put("cid", ChallengeEntry(answer="ABCDE"), ttl=300)
    assert verify_challenge("cid", "abcde", make_settings(case_sensitive=True), store) is True


@pytest.mark.parametrize("captcha_id", ["never-issued", "", None])
def test_unknown_id_rejected(store, captcha_id):
    assert verify_challenge(captcha_id, "10", make_settings(), store) is False


def test_disabled_captcha_fails_open(store):
    settings = make_settings(enabled=False)
    assert verify_challenge("never-issued", "anything", settings, store) is True
    assert verify_challenge(None, None, settings, UnreachableStore()) is True


def test_disabled_captcha_does_not_consume(store):
    store.put("cid", ChallengeEntry(answer="10"), ttl=300)
    verify_challenge("cid", "10", make_settings(enabled=False), store)
    assert verify_challenge("cid", "10", make_settings(), store) is True


def test_unreachable_store_fails_closed():
    assert verify_challenge("cid", "10", make_settings(), UnreachableStore()) is False


def test_unreachable_store_fails_generation_loudly():
    with pytest.raises(StoreUnavailable):
        generate_challenge(make_settings(), UnreachableStore())

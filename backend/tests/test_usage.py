"""Tests for the per-user usage counters."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from app.core.exceptions import (
    CounterLimitExceededError,
    InvalidCounterNameError,
    UserNotFoundError,
    ValidationError,
)
from app.models import User
from app.repositories.users import SqlAlchemyUserRepository
from app.services.usage import MAX_INCREMENT, UsageCounterStore, resolve_counter_name


@pytest.fixture
def store(users: SqlAlchemyUserRepository) -> UsageCounterStore:
    return UsageCounterStore(users)


class TestCounterNames:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("filesUploaded", "filesUploaded"),
            ("files_uploaded", "filesUploaded"),
            ("batch_analysis", "batchAnalysisCount"),
            ("compare_resumes", "compareResumesCount"),
            ("selected_candidate", "selectedCandidateCount"),
        ],
    )
    def test_resolve(self, name: str, expected: str) -> None:
        assert resolve_counter_name(name) == expected

    def test_unknown_name(self) -> None:
        with pytest.raises(InvalidCounterNameError):
            resolve_counter_name("password_hash")


class TestSnapshot:
    def test_new_user_starts_at_zero(self, store, make_user) -> None:
        make_user()
        snapshot = store.get("alice@example.com")
        assert set(snapshot.counters.values()) == {0}
        assert snapshot.limits == {"filesUploaded": 10, "selectedCandidateCount": 10}
        assert snapshot.remaining == {"filesUploaded": 10, "selectedCandidateCount": 10}

    def test_lookup_is_case_insensitive(self, store, make_user) -> None:
        make_user()
        assert store.get("  Alice@Example.COM ").email == "alice@example.com"

    def test_unknown_user(self, store) -> None:
        with pytest.raises(UserNotFoundError):
            store.get("nobody@example.com")

    def test_remaining_never_negative(self, store, users, make_user) -> None:
        make_user()
        users.increment_counter("alice@example.com", "files_uploaded", 15)
        snapshot = store.get("alice@example.com")
        assert snapshot.counters["filesUploaded"] == 15
        assert snapshot.remaining["filesUploaded"] == 0


class TestIncrement:
    def test_increment_by_one(self, store, make_user) -> None:
        make_user()
        snapshot = store.increment("alice@example.com", "filesUploaded")
        assert snapshot.counters["filesUploaded"] == 1
        assert snapshot.remaining["filesUploaded"] == 9

    def test_increment_by_amount_via_alias(self, store, make_user) -> None:
        make_user()
        snapshot = store.increment("alice@example.com", "batch_analysis", 3)
        assert snapshot.counters["batchAnalysisCount"] == 3

    def test_upload_limit_is_reported_not_enforced(self, store, make_user) -> None:
        make_user()
        store.increment("alice@example.com", "filesUploaded", 10)
        snapshot = store.increment("alice@example.com", "filesUploaded", 2)
        assert snapshot.counters["filesUploaded"] == 12

    def test_unknown_user_creates_nothing(self, store, users, db) -> None:
        with pytest.raises(UserNotFoundError):
            store.increment("ghost@example.com", "filesUploaded")
        assert users.get_by_email("ghost@example.com") is None
        assert db.query(User).count() == 0

    def test_invalid_counter(self, store, make_user) -> None:
        make_user()
        with pytest.raises(InvalidCounterNameError):
            store.increment("alice@example.com", "email_verified")

    @pytest.mark.parametrize("amount", [0, -1, 1.5, True, "2", MAX_INCREMENT + 1, 10**20])
    def test_invalid_amount(self, store, make_user, amount) -> None:
        make_user()
        with pytest.raises(ValidationError):
            store.increment("alice@example.com", "filesUploaded", amount)

    def test_largest_amount_is_accepted(self, store, make_user) -> None:
        make_user()
        snapshot = store.increment("alice@example.com", "filesUploaded", MAX_INCREMENT)
        assert snapshot.counters["filesUploaded"] == MAX_INCREMENT


class TestCeiling:
    def test_stops_at_limit(self, store, make_user) -> None:
        make_user()
        for _ in range(10):
            store.increment("alice@example.com", "selectedCandidateCount")

        with pytest.raises(CounterLimitExceededError) as exc_info:
            store.increment("alice@example.com", "selectedCandidateCount")

        err = exc_info.value
        assert err.current == 10
        assert err.limit == 10
        assert err.extra["remaining"] == 0
        assert store.get("alice@example.com").counters["selectedCandidateCount"] == 10

    def test_amount_that_would_cross_limit_is_rejected_whole(self, store, make_user) -> None:
        make_user()
        store.increment("alice@example.com", "selectedCandidateCount", 8)
        with pytest.raises(CounterLimitExceededError):
            store.increment("alice@example.com", "selectedCandidateCount", 3)
        snapshot = store.increment("alice@example.com", "selectedCandidateCount", 2)
        assert snapshot.counters["selectedCandidateCount"] == 10

    def test_unknown_user_is_not_a_limit_error(self, store) -> None:
        with pytest.raises(UserNotFoundError):
            store.increment("ghost@example.com", "selectedCandidateCount")


class TestConcurrency:
    """Each worker uses its own session, like separate requests."""

    def _run(self, session_factory, counter: str, workers: int) -> list:
        def work(_):
            session = session_factory()
            try:
                store = UsageCounterStore(SqlAlchemyUserRepository(session))
                try:
                    store.increment("alice@example.com", counter)
                    return "ok"
                except CounterLimitExceededError:
                    return "limited"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=8) as pool:
            return list(pool.map(work, range(workers)))

    def test_no_lost_updates(self, store, session_factory, make_user) -> None:
        make_user()
        results = self._run(session_factory, "filesUploaded", 25)
        assert results.count("ok") == 25
        assert store.get("alice@example.com").counters["filesUploaded"] == 25

    def test_ceiling_holds_under_contention(self, store, session_factory, make_user) -> None:
        make_user()
        results = self._run(session_factory, "selectedCandidateCount", 20)
        assert results.count("ok") == 10
        assert results.count("limited") == 10
        assert store.get("alice@example.com").counters["selectedCandidateCount"] == 10

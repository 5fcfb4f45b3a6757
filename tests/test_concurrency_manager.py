"""
Tests for retry and background execution.
"""

import pytest

from athena.core import ConflictError, StaleRevisionError, ValidationError
from athena.services import ConcurrencyManager


class TestExecuteWithRetry:
    def test_returns_first_success(self):
        manager = ConcurrencyManager(sleep=lambda seconds: None)

        assert manager.execute_with_retry(lambda: 42) == 42

    def test_retries_stale_revisions_with_backoff(self):
        delays = []
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StaleRevisionError("changed")
            return "done"

        manager = ConcurrencyManager(max_retries=3, backoff_factor=0.5, sleep=delays.append)

        assert manager.execute_with_retry(flaky) == "done"
        assert delays == [0.5, 1.0]

    def test_other_errors_are_not_retried(self):
        attempts = []

        def invalid():
            attempts.append(1)
            raise ValidationError("bad")

        manager = ConcurrencyManager(sleep=lambda seconds: None)

        with pytest.raises(ValidationError):
            manager.execute_with_retry(invalid)
        assert len(attempts) == 1

    def test_gives_up_with_conflict(self):
        def always_stale():
            raise StaleRevisionError("changed")

        manager = ConcurrencyManager(max_retries=1, sleep=lambda seconds: None)

        with pytest.raises(ConflictError) as excinfo:
            manager.execute_with_retry(always_stale, "enrollment")
        assert excinfo.value.error_code == "concurrent_modification"


class TestBackgroundWork:
    def test_submit_and_cleanup(self):
        manager = ConcurrencyManager(max_workers=2)
        results = []

        future = manager.submit(results.append, "synced")
        manager.cleanup()

        assert future.done()
        assert results == ["synced"]

    def test_cleanup_without_work(self):
        ConcurrencyManager().cleanup()

"""Unit tests for the in-process sliding-window rate limiter."""

import uuid
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from growth_game.core.rate_limit import RateLimitConfig, RateLimiter

LIMIT = RateLimitConfig(requests=2, window_seconds=60)


class TestRateLimiter:
    def setup_method(self):
        self.limiter = RateLimiter()
        self.user_id = uuid.uuid4()

    def test_allows_up_to_limit(self):
        self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
        self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
        assert self.limiter.get_remaining(self.user_id, "export", LIMIT) == 0

    def test_rejects_over_limit_with_retry_after(self):
        with patch("growth_game.core.rate_limit.time.time", return_value=1000.0):
            self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
            self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
            with pytest.raises(HTTPException) as exc_info:
                self.limiter.check_rate_limit(self.user_id, "export", LIMIT)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "61"

    def test_window_slides(self):
        with patch("growth_game.core.rate_limit.time.time", return_value=1000.0):
            self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
            self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
        with patch("growth_game.core.rate_limit.time.time", return_value=1061.0):
            self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
            assert self.limiter.get_remaining(self.user_id, "export", LIMIT) == 1

    def test_users_and_endpoints_are_independent(self):
        other = uuid.uuid4()
        self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
        self.limiter.check_rate_limit(self.user_id, "export", LIMIT)

        self.limiter.check_rate_limit(other, "export", LIMIT)
        self.limiter.check_rate_limit(self.user_id, "other", LIMIT)

    def test_reset_clears_hits(self):
        self.limiter.check_rate_limit(self.user_id, "export", LIMIT)
        self.limiter.reset()
        assert self.limiter.get_remaining(self.user_id, "export", LIMIT) == 2

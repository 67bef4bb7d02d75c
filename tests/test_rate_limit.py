"""
tests.test_rate_limit
~~~~~~~~~~~~~~~~~~~~~

OriginRateLimiter 固定窗口限流与来源推断测试。
"""
from __future__ import annotations

import time

from starlette.requests import Request

from bingo_relay.core.rate_limit import OriginRateLimiter, client_origin


def make_request(headers: dict[str, str], client: tuple[str, int] | None = ("9.9.9.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestOriginRateLimiter:

    def test_ceiling_within_one_window(self) -> None:
        """同一窗口内前 100 次放行，第 101 次拒绝。"""
        limiter = OriginRateLimiter(max_requests=100, window_seconds=60)

        assert all(limiter.admit("1.1.1.1") for _ in range(100))
        assert limiter.admit("1.1.1.1") is False

    def test_rejected_requests_do_not_grow_the_bucket(self) -> None:
        limiter = OriginRateLimiter(max_requests=5, window_seconds=60)
        for _ in range(20):
            limiter.admit("1.1.1.1")

        bucket = limiter.bucket("1.1.1.1")
        assert bucket is not None
        assert bucket.count == 5

    def test_origins_are_independent(self) -> None:
        limiter = OriginRateLimiter(max_requests=2, window_seconds=60)
        limiter.admit("a")
        limiter.admit("a")

        assert limiter.admit("a") is False
        assert limiter.admit("b") is True

    def test_new_window_starts_fresh(self) -> None:
        """窗口过期后整桶替换，计数从 1 重新开始。"""
        limiter = OriginRateLimiter(max_requests=3, window_seconds=1)
        for _ in range(3):
            assert limiter.admit("1.1.1.1") is True
        assert limiter.admit("1.1.1.1") is False

        time.sleep(1.1)

        assert limiter.admit("1.1.1.1") is True
        bucket = limiter.bucket("1.1.1.1")
        assert bucket is not None
        assert bucket.count == 1
        assert bucket.window_reset_at > time.time()

    def test_bucket_absent_for_unseen_origin(self) -> None:
        assert OriginRateLimiter().bucket("never-seen") is None

    def test_reset_clears_all_buckets(self) -> None:
        limiter = OriginRateLimiter(max_requests=1, window_seconds=60)
        limiter.admit("a")
        assert limiter.admit("a") is False

        limiter.reset()

        assert limiter.admit("a") is True


class TestClientOrigin:

    def test_prefers_first_forwarded_for_entry(self) -> None:
        request = make_request({"X-Forwarded-For": " 1.2.3.4 , 5.6.7.8", "X-Real-IP": "7.7.7.7"})
        assert client_origin(request) == "1.2.3.4"

    def test_falls_back_to_real_ip(self) -> None:
        assert client_origin(make_request({"X-Real-IP": "7.7.7.7"})) == "7.7.7.7"

    def test_falls_back_to_peer_address(self) -> None:
        assert client_origin(make_request({})) == "9.9.9.9"

    def test_unknown_without_any_hint(self) -> None:
        assert client_origin(make_request({}, client=None)) == "unknown"

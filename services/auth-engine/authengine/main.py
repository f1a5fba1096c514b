"""Process wiring for the authentication engine."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from psycopg_pool import ConnectionPool

from .config import Settings, get_settings
from .domain.service import AuthService
from .notifications import LoggingDispatcher, NotificationDispatcher
from .repository import AccountRepository
from .security.rate_limiter import AttemptLimiter, SlidingWindowRateLimiter
from .security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Install a basic root handler for hosts that do not configure logging themselves."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_rate_limiter(settings: Settings) -> AttemptLimiter:
    """Instantiate the configured limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # fail fast so that an unreachable server falls back to memory
            client.ping()
            logger.info("attempt limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on a live server
            logger.warning("redis attempt limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("attempt limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


@contextmanager
def open_auth_service(
    settings: Settings | None = None,
    *,
    dispatcher: NotificationDispatcher | None = None,
) -> Iterator[AuthService]:
    """Open the Postgres pool, yield a wired ``AuthService`` and close the pool on exit."""
    settings = settings or get_settings()
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    try:
        yield AuthService(
            AccountRepository(pool),
            dispatcher or LoggingDispatcher(reveal_codes=settings.otp_dev_mode),
            settings,
            limiter=build_rate_limiter(settings),
        )
    finally:
        pool.close()

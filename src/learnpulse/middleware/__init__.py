"""HTTP middleware and exception handlers for the learnpulse API."""

from fastapi import FastAPI

from learnpulse.config import Settings
from learnpulse.middleware.cors import setup_cors
from learnpulse.middleware.error_handler import setup_error_handlers
from learnpulse.middleware.logging import setup_logging
from learnpulse.middleware.rate_limit import RateLimitMiddleware
from learnpulse.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware stack.

    Starlette runs middleware in reverse order of registration, so CORS is
    added last to wrap every response, including 429s from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)

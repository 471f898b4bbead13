"""Rate limiting for import-triggering endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse


limiter = Limiter(key_func=get_remote_address)


def setup_rate_limiting(app: FastAPI):
    """Attach SlowAPI rate limiting to the FastAPI app."""
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Rate limit exceeded",
                "retry_after": str(exc.detail),
            },
        )

    app.add_middleware(SlowAPIMiddleware)

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import get_settings
from app.errors import error_body

GLOBAL_LIMIT = "30/5minute"
ACCOUNT_LIMIT = "10/5minute"
TOO_MANY_REQUESTS = "Too many requests, please try again later"

# application_limits share one counter per client across every undecorated route
limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[GLOBAL_LIMIT],
    enabled=get_settings().rate_limit_enabled,
)

# One bucket for all /auth and /user routes
account_limit = limiter.shared_limit(ACCOUNT_LIMIT, scope="account", error_message=TOO_MANY_REQUESTS)


# Must stay synchronous: SlowAPIMiddleware calls it without awaiting
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content=error_body(TOO_MANY_REQUESTS))

"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

Usage in routes:
    from fastapi import Request
    from greenguardian.core.rate_limit import limiter

    @router.post("/api/v1/incidents")
    @limiter.limit("10/minute")
    async def submit(request: Request, payload: SubmitIncidentRequest):
        ...

Wired into the app in main.py (app.state.limiter + RateLimitExceeded handler).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Key requests by client IP. Report submission is the only limited route:
# it fans out into blob uploads, so a flood is expensive.
limiter = Limiter(key_func=get_remote_address)

"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance imported by routers for
per-endpoint limits (batch runs use ``settings.BATCH_RATE_LIMIT``),
and wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Default: 120 requests/minute per client IP for all endpoints.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
)

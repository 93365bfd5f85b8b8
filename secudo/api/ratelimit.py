"""Shared slowapi limiter, configured from ``SEC_RATE_LIMIT``."""

from __future__ import annotations

import warnings

# slowapi still calls asyncio.iscoroutinefunction, deprecated since Python 3.14
warnings.filterwarnings(
    "ignore",
    message=r".*asyncio\.iscoroutinefunction.*",
    category=DeprecationWarning,
    module=r"slowapi\..*",
)
from slowapi import Limiter  # noqa: E402
from slowapi.util import get_remote_address  # noqa: E402

from secudo.config import settings  # noqa: E402

rate_limit_enabled = settings.rate_limit.lower() != "none"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit] if rate_limit_enabled else [],
    enabled=rate_limit_enabled,
)

#: Tighter limit for credential endpoints.
AUTH_RATE_LIMIT = "10/minute"

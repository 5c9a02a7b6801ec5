"""
Shared slowapi limiter.
Comment submission is open to anonymous visitors, so it is throttled per client address.
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from commentstore.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

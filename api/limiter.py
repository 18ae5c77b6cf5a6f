"""
api/limiter.py -- Shared slowapi rate limiter instance.

Mounted as middleware in api/main.py and applied per route with
@limiter.limit() in api/routes/v1/ (navigation, permission checks, guard sync).
Limit strings come from Settings (NAV_RATE_LIMIT, SYNC_RATE_LIMIT) and are
passed as callables so they are read when a request arrives, not at import.

One shared instance means one in-memory counter store for every router.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

"""
Shared slowapi limiter.

main.py registers it on app.state; routers decorate endpoints with
@limiter.limit(...) using this same instance.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from backend.app.core.settings import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=get_settings().RATE_LIMIT_STORAGE_URI,
)

from slowapi import Limiter
from slowapi.util import get_remote_address

from rentline.core.config import settings

# Shared by the app middleware and per-route limits; Redis-backed in deployment
limiter = Limiter(key_func=get_remote_address, storage_uri=settings.ratelimit_storage_url)

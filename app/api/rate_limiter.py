import os
from slowapi.util import get_remote_address
import slowapi
limiter = slowapi.Limiter(key_func=get_remote_address, storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"))

from slowapi import Limiter
from slowapi.util import get_remote_address

import config

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[config.RATE_LIMIT_GLOBAL],
    enabled=config.RATE_LIMIT_ENABLED,
)

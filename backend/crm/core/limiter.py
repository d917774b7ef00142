from slowapi import Limiter
from slowapi.util import get_remote_address

# Backup and restore are heavy, operator-triggered actions.
BACKUP_RATE_LIMIT = "10/minute"

# If later behind a proxy, parse X-Forwarded-For here.
limiter = Limiter(key_func=get_remote_address)

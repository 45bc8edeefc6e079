"""
================================================================================
SAMISKE COMMUNITY - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description Timezone activation and presence tracking

MODULE PURPOSE
================================================================================
1. TimezoneMiddleware
   - Activates the signed-in user's timezone for datetime rendering
   - Falls back to Europe/Oslo for anonymous users or unknown zone names

2. UpdateLastSeenMiddleware
   - Updates User.last_seen for the "online now" indicator
   - Throttled through the cache to one database write per 30 seconds

CACHING STRATEGY
================================================================================
Write Throttle Cache (30 seconds):
    Key: "last_seen_update_{user_id}"
Read Cache (5 minutes):
    Key: "user_{user_id}_last_seen"

ONLINE STATUS LOGIC
================================================================================
Users are "online" if last_seen is within the last 5 minutes
(User.is_online). Status accuracy is therefore +/- 30 seconds.

DEPENDENCIES
================================================================================
- zoneinfo: IANA timezone database
- django.utils.timezone: Timezone activation
- django.core.cache: Cache backend
================================================================================
"""

import logging
import zoneinfo
from datetime import timedelta

from django.core.cache import cache
from django.db import DatabaseError
from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = zoneinfo.ZoneInfo('Europe/Oslo')
LAST_SEEN_THROTTLE = timedelta(seconds=30)


# ============================================================================
# TIMEZONE MIDDLEWARE
# ============================================================================

class TimezoneMiddleware:
    """
    Activate the user's timezone for the duration of the request.

    Flow:
        1. Authenticated user: activate ZoneInfo(user.timezone)
        2. Unknown zone name or anonymous user: activate Europe/Oslo
        3. Process request
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        tz = DEFAULT_TIMEZONE

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            try:
                tz = zoneinfo.ZoneInfo(user.timezone)
            except (zoneinfo.ZoneInfoNotFoundError, ValueError, TypeError):
                # --- Fallback: invalid zone name stored on the profile ---
                logger.debug(f"Unknown timezone {user.timezone!r} for user {user.pk}")

        timezone.activate(tz)
        try:
            return self.get_response(request)
        finally:
            timezone.deactivate()


# ============================================================================
# LAST SEEN / PRESENCE TRACKING MIDDLEWARE
# ============================================================================

class UpdateLastSeenMiddleware:
    """
    Update user's last_seen timestamp with cache-based write throttling.

    Example Timeline:
        00:00 - Request 1: DB write + cache set
        00:15 - Request 2: Cache hit, no DB write
        00:31 - Request 3: Throttle expired, DB write + cache set

    A failed write is logged and never breaks the request.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            now = timezone.now()

            # ================================================================
            #        CACHE CHECK (WRITE THROTTLING)
            # ================================================================
            cache_key = f"last_seen_update_{user.id}"
            last_update = cache.get(cache_key)

            if not last_update or (now - last_update) > LAST_SEEN_THROTTLE:
                user.last_seen = now
                try:
                    user.save(update_fields=['last_seen'])
                    cache.set(cache_key, now, int(LAST_SEEN_THROTTLE.total_seconds()))
                except DatabaseError:
                    logger.exception(f"Failed to update last_seen for user {user.id}")

                cache.set(f"user_{user.id}_last_seen", now, 300)

        return self.get_response(request)

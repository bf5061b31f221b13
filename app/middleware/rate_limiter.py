"""
Rate limiting configuration.

The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits per blueprint and per expensive route.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

READ_LIMIT = "200/minute"
MANUAL_CHECK_LIMIT = "5/minute"

# Endpoints that run a full scan or job on demand
_MANUAL_CHECK_ENDPOINTS = (
    "notification_bp.trigger_notification_check",
    "notification_bp.check_progression_rules",
    "notification_bp.trigger_job",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to the API blueprints.

    Limits (per remote IP):
        - Notification API:  200/minute
        - Manual checks:     5/minute (each one scans every open entity)
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint in _MANUAL_CHECK_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view:
            app.view_functions[endpoint] = limiter.limit(MANUAL_CHECK_LIMIT)(view)

    bp = app.blueprints.get("notification_bp")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    health = app.view_functions.get("health")
    if health:
        limiter.exempt(health)

    app.logger.info("Rate limiter configured: api=%s, manual checks=%s",
                    READ_LIMIT, MANUAL_CHECK_LIMIT)

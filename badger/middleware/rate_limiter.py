"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.  The Limiter
instance is created in badger/__init__.py with no default limits; this
module applies granular limits per route category.

Usage:
    from badger.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Promotion endpoints (reservations + transitions): PROMOTION_RATE_LIMIT
        - Template catalogue (read-only):                   TEMPLATE_RATE_LIMIT
        - Health check:                                     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    promotion_limit = app.config.get("PROMOTION_RATE_LIMIT", "60/minute")
    template_limit = app.config.get("TEMPLATE_RATE_LIMIT", "200/minute")

    bp = app.blueprints.get("promotion")
    if bp:
        limiter.limit(promotion_limit)(bp)

    bp = app.blueprints.get("promotion_template")
    if bp:
        limiter.limit(template_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — promotions: %s, templates: %s",
        promotion_limit, template_limit,
    )

"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in ``proposal_board/__init__.py`` with no default limits; this
module applies limits per route category.

Usage:
    from proposal_board.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Board routes mix frequent reads (view polling) with drop commits
BOARD_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Board / proposal endpoints: 120/minute
        - Health check:               exempt

    Rate limiting is skipped in testing mode or when RATELIMIT_ENABLED is off.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("board")
    if bp:
        limiter.limit(BOARD_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — board: %s, health: exempt", BOARD_LIMIT)

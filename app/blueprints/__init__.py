"""
Trade Operations Platform
Blueprint registry.
"""

from flask import request


def pagination_args(default_limit=50, max_limit=500):
    """Read ``limit`` / ``offset`` query params, clamped.

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset

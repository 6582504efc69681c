"""
Project Tracker
Blueprint registry and shared request helpers.
"""

from flask import current_app, request


def paginate_query(query, default_limit=None, max_limit=None):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default LIST_DEFAULT_LIMIT, capped at LIST_MAX_LIMIT)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    default_limit = default_limit or current_app.config.get("LIST_DEFAULT_LIMIT", 200)
    max_limit = max_limit or current_app.config.get("LIST_MAX_LIMIT", 1000)
    total = query.count()
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def json_body():
    """Request JSON as a dict; anything else becomes an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

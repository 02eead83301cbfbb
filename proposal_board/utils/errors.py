"""JSON error bodies for the board API.

Every error response has the same shape::

    {"error": "<message>", "code": "ERR_…", "details": {...}, "request_id": "…"}

``details`` is omitted when empty; ``request_id`` echoes the id assigned by
the timing middleware so a client report can be matched to the log line.

    from proposal_board.utils.errors import api_error, E

    return api_error(E.WIP_LIMIT, str(exc), details={"column_id": "drafting"})
"""

from __future__ import annotations

from flask import g, has_request_context, jsonify


class E:
    """Machine-readable error codes."""

    # 400 malformed request, 422 well-formed but breaks a board rule
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    NOT_FOUND = "ERR_NOT_FOUND"

    # 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    WIP_LIMIT = "ERR_WIP_LIMIT"
    UNRESOLVED_COLUMN = "ERR_UNRESOLVED_COLUMN"

    FORBIDDEN = "ERR_FORBIDDEN"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.FORBIDDEN: 403,
    E.CONFLICT_DUPLICATE: 409,
    E.WIP_LIMIT: 409,
    E.UNRESOLVED_COLUMN: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a view to return.

    ``status`` overrides the code's default from ``STATUS_BY_CODE`` (400 for
    unknown codes).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    if has_request_context() and getattr(g, "request_id", None):
        body["request_id"] = g.request_id
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)

"""
Platform-wide exception hierarchy.

Services and engine modules raise these types; blueprints map them to HTTP
status codes in one place (``proposal_board.blueprints.board_bp``).

Usage:
    from proposal_board.core.exceptions import Forbidden, NotFoundError

    raise NotFoundError(resource="Proposal", resource_id=42)
    raise Forbidden(column_id="final", role="viewer")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Proposal").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


# ── Board engine errors ──────────────────────────────────────────────────────


class Forbidden(Exception):
    """Raised when the acting role may not move a card into / out of a column.

    The drop is rejected and nothing is persisted. Maps to HTTP 403.
    """

    def __init__(self, column_id: str, role: str | None, reason: str | None = None) -> None:
        self.column_id = column_id
        self.role = role
        self.reason = reason or "role not allowed to move into this column"
        super().__init__(f"Role {role!r} cannot move to column '{column_id}': {self.reason}")


class UnresolvedColumn(Exception):
    """Raised when a proposal's pointers match no configured column.

    Indicates a data / board-config mismatch; surfaced, never defaulted.
    """

    def __init__(
        self,
        proposal_id: int | str | None,
        current_phase: str | None = None,
        custom_workflow_stage_id: str | None = None,
        status: str | None = None,
    ) -> None:
        self.proposal_id = proposal_id
        self.pointers = {
            "current_phase": current_phase,
            "custom_workflow_stage_id": custom_workflow_stage_id,
            "status": status,
        }
        super().__init__(
            f"Proposal {proposal_id} matches no board column "
            f"(phase={current_phase!r}, stage={custom_workflow_stage_id!r}, status={status!r})"
        )


class WipLimitExceeded(Exception):
    """Raised when a hard WIP limit would be exceeded by a move. Maps to HTTP 409."""

    def __init__(self, column_id: str, limit: int, current: int) -> None:
        self.column_id = column_id
        self.limit = limit
        self.current = current
        super().__init__(
            f"Column '{column_id}' is at its hard WIP limit ({current}/{limit})"
        )


class PersistenceError(Exception):
    """Raised when the store rejects a write; the session has been rolled back."""

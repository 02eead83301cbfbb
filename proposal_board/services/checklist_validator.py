"""
Checklist Validator — system-check predicates.

Each known ``system_check`` item id maps to a pure predicate over proposal
data. Unknown ids evaluate to False: an unrecognised check is never marked
complete.
"""

from __future__ import annotations

from typing import Callable


def _is_set(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _contract_value(proposal) -> bool:
    value = getattr(proposal, "contract_value", None)
    try:
        return value is not None and float(value) > 0
    except (TypeError, ValueError):
        return False


def _due_date(proposal) -> bool:
    return _is_set(getattr(proposal, "due_date", None))


def _name_solicitation(proposal) -> bool:
    return _is_set(getattr(proposal, "proposal_name", None)) and _is_set(
        getattr(proposal, "solicitation_number", None)
    )


def _complete_sections(proposal) -> bool:
    total = getattr(proposal, "section_count", 0) or 0
    done = getattr(proposal, "completed_section_count", 0) or 0
    return total > 0 and done >= total


SYSTEM_CHECKS: dict[str, Callable[[object], bool]] = {
    "contract_value": _contract_value,
    "due_date": _due_date,
    "set_due_date": _due_date,
    "name_solicitation": _name_solicitation,
    "complete_sections": _complete_sections,
}


def evaluate(item_id: str, proposal) -> bool:
    """Whether system check ``item_id`` is satisfied by ``proposal``."""
    check = SYSTEM_CHECKS.get(item_id)
    if check is None:
        return False
    return bool(check(proposal))

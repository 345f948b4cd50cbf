# services/case_service.py - Case creation, updates and lookup
#
# Thin layer: validates input, delegates to repository.
# Case creation is two steps (customer details, then condition assessment);
# step 1 is validated on its own so the wizard can block "Continue".

import logging
import sqlite3
import time
from typing import TYPE_CHECKING, Callable

from domain.models import Case, CaseDetail
from services.errors import CaseLoadError, ValidationError
from services.session import SessionContext
from status_service import is_valid_status

if TYPE_CHECKING:
    from database import CaseRepository

logger = logging.getLogger(__name__)

CASE_LIST_RETRIES = 2
CASE_LIST_RETRY_DELAY = 1.0

_CUSTOMER_FIELDS = ("customer_name", "customer_address", "customer_mobile", "customer_email")


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def validate_customer_step(customer: dict) -> dict:
    """
    Step 1: customer details. customer_name is required; other fields optional.
    Returns the cleaned dict. Raises ValidationError.
    """
    name = (customer.get("customer_name") or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    cleaned = {k: _clean(customer.get(k)) for k in _CUSTOMER_FIELDS}
    cleaned["customer_name"] = name
    return cleaned


def _check_condition(label: str, value: str | None) -> str:
    if not is_valid_status(value):
        raise ValidationError(f"{label} must be NORMAL, ALERT or ALARM")
    return value


def create_case(
    repo: "CaseRepository",
    session: SessionContext,
    customer: dict,
    machine_condition: str,
    lubricant_condition: str,
) -> str:
    """Step 2: validate both steps and create the case. Returns new case ID."""
    data = validate_customer_step(customer)
    data["machine_condition"] = _check_condition("Machine condition", machine_condition)
    data["lubricant_condition"] = _check_condition("Lubricant condition", lubricant_condition)
    return repo.create_case(session.require_owner(), data)


def _update_owned_case(repo: "CaseRepository", session: SessionContext, case_id: str, data: dict) -> None:
    if not repo.update_case(case_id, data, session.require_owner()):
        raise ValueError(f"Case {case_id} not found.")


def update_recommendations(
    repo: "CaseRepository",
    session: SessionContext,
    case_id: str,
    recommendations: str | None,
) -> None:
    _update_owned_case(repo, session, case_id, {"recommendations": _clean(recommendations)})


def update_conditions(
    repo: "CaseRepository",
    session: SessionContext,
    case_id: str,
    machine_condition: str,
    lubricant_condition: str,
) -> None:
    """Reassess both conditions. Raises ValueError if the case is not the owner's."""
    _update_owned_case(
        repo,
        session,
        case_id,
        {
            "machine_condition": _check_condition("Machine condition", machine_condition),
            "lubricant_condition": _check_condition("Lubricant condition", lubricant_condition),
        },
    )


def list_cases_with_retry(
    repo: "CaseRepository",
    session: SessionContext,
    retries: int = CASE_LIST_RETRIES,
    delay: float = CASE_LIST_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> list[Case]:
    """
    Read the owner's cases, newest first. On a database error, retry up to
    `retries` more times with a fixed delay, then raise CaseLoadError.
    """
    owner = session.require_owner()
    attempts = 0
    while True:
        attempts += 1
        try:
            return repo.list_cases(owner)
        except sqlite3.Error as e:
            if attempts > retries:
                logger.error("Case list failed after %d attempt(s): %s", attempts, e)
                raise CaseLoadError(f"Could not load cases: {e}", attempts) from e
            logger.warning("Case list failed (attempt %d), retrying in %.1fs: %s", attempts, delay, e)
            sleep(delay)


def get_case_detail(repo: "CaseRepository", session: SessionContext, case_id: str) -> CaseDetail | None:
    """Case with its tests and results, or None if not found for this owner."""
    return repo.get_case_detail(case_id, session.require_owner())

# services/template_service.py - Reusable test templates
#
# Templates hold parameter names, limits and units only. They are copied by
# value into a new test form; a test keeps no link to the template it used.

from typing import TYPE_CHECKING, Sequence

from domain.models import ParameterRow, TestTemplate
from services.errors import ValidationError
from services.session import SessionContext
from services.test_service import parse_number

if TYPE_CHECKING:
    from database import CaseRepository


def list_templates(repo: "CaseRepository", session: SessionContext) -> list[TestTemplate]:
    return repo.list_templates(session.require_owner())


def save_rows_as_template(
    repo: "CaseRepository",
    session: SessionContext,
    test_name: str,
    rows: Sequence[ParameterRow],
) -> str:
    """
    Save the current row set (limits and units, not actual values) as a new
    template. Returns new template ID. Raises ValidationError on invalid input.
    """
    name = (test_name or "").strip()
    if not name:
        raise ValidationError("Template name is required")
    params = []
    for r in rows:
        pname = (r.name or "").strip()
        if not pname:
            raise ValidationError("Every template parameter needs a name")
        params.append(
            {
                "parameter_name": pname,
                "lower_limit": parse_number(r.lower_limit, f"{pname}: lower limit"),
                "upper_limit": parse_number(r.upper_limit, f"{pname}: upper limit"),
                "unit": (r.unit or "").strip() or None,
            }
        )
    if not params:
        raise ValidationError("Add at least one parameter")
    return repo.create_template(session.require_owner(), name, params)


def prefill_from_template(
    repo: "CaseRepository", session: SessionContext, template_id: str
) -> tuple[str, list[ParameterRow]]:
    """
    Test name and rows for a new test, copied from the template with actual
    values cleared. Raises ValueError if the owner has no such template.
    """
    template = repo.get_template(template_id, session.require_owner())
    if template is None:
        raise ValueError(f"Template {template_id} not found.")
    return template.test_name, [ParameterRow.from_template_parameter(p) for p in template.parameters]

# services/settings_service.py - Company profile persistence
#
# Thin layer: validates input, delegates to repository.
# One profile per owner; it brands the report header and footer.

from typing import TYPE_CHECKING

from domain.models import CompanySettings
from services.errors import ValidationError
from services.session import SessionContext

if TYPE_CHECKING:
    from database import CaseRepository


def get_company_settings(repo: "CaseRepository", session: SessionContext) -> CompanySettings:
    """Saved profile for the owner, or defaults if none has been saved yet."""
    owner = session.require_owner()
    return repo.get_company_settings(owner) or CompanySettings(owner_id=owner)


def save_company_settings(repo: "CaseRepository", session: SessionContext, data: dict) -> None:
    """Validate and upsert the owner's profile. Blank optional fields are stored as NULL."""
    name = (data.get("company_name") or "").strip()
    if not name:
        raise ValidationError("Company name is required")
    cleaned = {"company_name": name}
    for key in ("logo_url", "contact_number", "email", "address"):
        cleaned[key] = (data.get(key) or "").strip() or None
    repo.upsert_company_settings(session.require_owner(), cleaned)

# services - Orchestration layer between the UI and the repository
from services import (
    session,
    storage_service,
    case_service,
    test_service,
    template_service,
    settings_service,
)

__all__ = [
    "session",
    "storage_service",
    "case_service",
    "test_service",
    "template_service",
    "settings_service",
]

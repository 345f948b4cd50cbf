# services/session.py - Operator identity for the running app
#
# The session is created on sign-in and passed explicitly to every service
# that needs the owner; nothing reads identity from module globals.

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class NotSignedInError(RuntimeError):
    """Raised when an owner-scoped operation runs without an active session."""


@dataclass
class SessionContext:
    owner_id: str
    display_name: str = ""
    signed_in_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    active: bool = True

    def require_owner(self) -> str:
        """Owner ID for scoping reads/writes. Raises NotSignedInError after sign-out."""
        if not self.active or not self.owner_id:
            raise NotSignedInError("You must be signed in to do this.")
        return self.owner_id

    @property
    def label(self) -> str:
        return self.display_name or self.owner_id


def sign_in(owner_id: str, display_name: str = "") -> SessionContext:
    """Start a session for owner_id. Raises ValueError if owner_id is blank."""
    owner_id = (owner_id or "").strip()
    if not owner_id:
        raise ValueError("Owner ID is required to sign in")
    session = SessionContext(owner_id=owner_id, display_name=(display_name or "").strip())
    logger.info("Signed in as %s", session.label)
    return session


def sign_out(session: SessionContext | None) -> None:
    """End the session. Later require_owner() calls on it raise NotSignedInError."""
    if session is None or not session.active:
        return
    session.active = False
    logger.info("Signed out %s", session.label)

"""Audit stamps for create, edit and archive."""

from datetime import datetime
from typing import Any, Callable

import pytz
from pydantic import BaseModel

ANONYMOUS_UID = "anonymous"
ANONYMOUS_EMAIL = "unknown@example.com"
ANONYMOUS_NAME = "Anonymous User"


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


class Actor(BaseModel):
    """
    The user performing a mutation.

    Attributes:
        uid (str | None): Stable user id.
        email (str | None): E-mail address.
        display_name (str | None): Human-readable name.
    """

    uid: str | None = None
    email: str | None = None
    display_name: str | None = None


class AuditTrailRecorder:
    """
    Produces the audit fields written alongside entry mutations.

    Missing actor details fall back to the anonymous defaults. The clock is
    injectable and must return timezone-aware timestamps.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def _resolve(self, actor: Actor | None) -> tuple[str, str, str]:
        actor = actor or Actor()
        return (
            actor.uid or ANONYMOUS_UID,
            actor.email or ANONYMOUS_EMAIL,
            actor.display_name or ANONYMOUS_NAME,
        )

    def stamp_create(self, actor: Actor | None) -> dict[str, Any]:
        uid, email, name = self._resolve(actor)
        at = self.now()
        return {
            "createdBy": uid,
            "createdByEmail": email,
            "createdByName": name,
            "createdAt": at,
            "updatedAt": at,
        }

    def stamp_edit(self, actor: Actor | None) -> dict[str, Any]:
        uid, email, name = self._resolve(actor)
        at = self.now()
        return {
            "lastModifiedBy": uid,
            "lastModifiedByEmail": email,
            "lastModifiedByName": name,
            "lastModifiedAt": at,
            "updatedAt": at,
        }

    def stamp_archive(self, actor: Actor | None, reason: str | None = None) -> dict[str, Any]:
        """
        Builds the archive audit stamp.

        Args:
            actor (Actor | None): Who archives the entry.
            reason (str | None): Free-text reason, stored as archivedReason.

        Returns:
            dict[str, Any]: archivedBy, archivedByEmail, archivedByName, archivedAt and archivedReason.
        """
        uid, email, name = self._resolve(actor)
        return {
            "archivedBy": uid,
            "archivedByEmail": email,
            "archivedByName": name,
            "archivedAt": self.now(),
            "archivedReason": reason,
        }

"""Authorization pass-through for pre-authenticated principals.

Authentication happens upstream; the engine only checks that the caller's
role may perform the requested operation.
"""
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from rollcall.core.config import settings
from rollcall.core.exceptions import ForbiddenError, UnauthorizedError


class Principal(BaseModel):
    """An already-authenticated caller."""
    id: str = Field(..., description="Identity provider subject")
    role: str = Field(..., description="Application role, e.g. admin or teacher")


class AccessPolicy:
    """Role checks for enrollment and recognition operations."""

    def __init__(
        self,
        enrollment_roles: Optional[Sequence[str]] = None,
        recognition_roles: Optional[Sequence[str]] = None,
    ) -> None:
        self.enrollment_roles = set(enrollment_roles or settings.enrollment_roles)
        self.recognition_roles = set(recognition_roles or settings.recognition_roles)

    def authorize_enrollment(self, principal: Optional[Principal], section_id: Optional[str] = None) -> Principal:
        """Allow enrolling faces and training section models.

        Raises:
            UnauthorizedError: If the principal is missing or its role is not allowed
        """
        return self._check(principal, self.enrollment_roles, "enroll faces", section_id)

    def authorize_recognition(self, principal: Optional[Principal], section_id: Optional[str] = None) -> Principal:
        """Allow running recognition for a section.

        Raises:
            UnauthorizedError: If the principal is missing or its role is not allowed
        """
        return self._check(principal, self.recognition_roles, "take attendance", section_id)

    @staticmethod
    def _check(
        principal: Optional[Principal],
        roles: set,
        action: str,
        section_id: Optional[str],
    ) -> Principal:
        if principal is None:
            raise UnauthorizedError("Authentication required")
        if principal.role not in roles:
            raise ForbiddenError(
                f"Role '{principal.role}' is not allowed to {action}",
                details={"role": principal.role, "section_id": section_id}
            )
        return principal

from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import Profile, Role
from smartshelf.resources.base import RealtimeResource
from smartshelf.session import Permission
from smartshelf.validation import PermissionDenied, ValidationError

logger = logging.getLogger(__name__)


class ProfilesResource(RealtimeResource[Profile]):
    """User management for admins."""

    table = "profiles"
    model = Profile
    label = "users"
    required_permission = Permission.MANAGE_USERS

    def change_role(self, user_id: str, role: Role, vendor_id: Optional[str] = None) -> bool:
        self.session.require(Permission.MANAGE_USERS)
        if user_id == self.session.user_id:
            raise PermissionDenied("You cannot change your own role")
        role = Role(role)
        profile = next((p for p in self.items if p.user_id == user_id), None)
        if profile is None:
            raise ValidationError("User not found")

        values = {"role": role.value}
        if role == Role.VENDOR:
            if not (vendor_id or profile.vendor_id):
                raise ValidationError("A vendor user must be linked to a vendor")
            values["vendor_id"] = vendor_id or profile.vendor_id
        elif vendor_id is not None:
            values["vendor_id"] = vendor_id

        row = self._write(
            "Failed to update user role", lambda: self.store.update("profiles", profile.id, values)
        )
        if row is None:
            return False
        self._audit(
            "UPDATE", "Profile", profile.id,
            f"Changed role of {profile.full_name or profile.email} to {role.value}",
        )
        self.toasts.success(
            "Role updated successfully", f"{profile.full_name or profile.email} is now {role.label}"
        )
        return True

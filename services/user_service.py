"""
User Service
Version: 11.0

Profile administration for the back office.
Profiles are created by the auth provider; this service only reads them
and edits roles and contact details.
DEPENDS ON: data_store.py
"""

import logging
from typing import List, Optional

from schemas import ProfilePatch, UserProfile, UserRole
from services.data_store import DataStore, Order
from services.errors import NotFoundError

logger = logging.getLogger(__name__)

TABLE = "profiles"


class UserService:
    """
    User profile management.

    Handles:
    - Listing profiles (newest first)
    - Role changes (ADMIN / MANAGER / CLIENT)
    - Contact detail edits
    """

    def __init__(self, store: DataStore):
        self.store = store

    async def list_users(self) -> List[UserProfile]:
        rows, _ = await self.store.select(TABLE, order=Order("created_at", descending=True))
        return [UserProfile.model_validate(r) for r in rows]

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        row = await self.store.get(TABLE, user_id)
        return UserProfile.model_validate(row) if row else None

    async def update_role(self, user_id: str, role: UserRole) -> UserProfile:
        role = UserRole(role)
        row = await self.store.update(TABLE, user_id, {"role": role.value})
        logger.info(f"User {user_id} role set to {role.value}")
        return UserProfile.model_validate(row)

    async def update_profile(self, user_id: str, patch: ProfilePatch) -> UserProfile:
        """Only the fields that were sent are written; null clears a field."""
        values = patch.model_dump(exclude_unset=True)
        if not values:
            user = await self.get_user(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return user

        row = await self.store.update(TABLE, user_id, values)
        return UserProfile.model_validate(row)

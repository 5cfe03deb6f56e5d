from typing import Optional, List
from datetime import datetime, timezone
import asyncio
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS, LEGACY_PROFILE_COLLECTIONS
from ..models.user import UserProfile, UserRole
from ..auth.session import create_session_token

logger = logging.getLogger(__name__)


class IdentityError(ValueError):
    pass


class IdentityService:
    """
    Resolves an authenticated principal to its role and profile.

    Profiles live in one ``users`` collection keyed by uid with a ``role``
    field. Accounts created before that layout only exist in the per-role
    collections, so those are probed as a fallback.
    """

    def __init__(self):
        self.db = database_service

    async def resolve(self, uid: str) -> Optional[UserProfile]:
        """Return the principal's profile, or None (fail closed) when none exists."""
        if not uid:
            return None

        success, data, _ = await self.db.get_document(COLLECTIONS['users'], uid)
        if success and data and data.get("role") in {r.value for r in UserRole}:
            return self._to_profile(uid, data, data["role"])

        # Probe the legacy collections in parallel; precedence follows LEGACY_PROFILE_COLLECTIONS
        results = await asyncio.gather(*[
            self.db.get_document(COLLECTIONS[collection], uid)
            for collection, _ in LEGACY_PROFILE_COLLECTIONS
        ])
        for (collection, role), (found, legacy, _) in zip(LEGACY_PROFILE_COLLECTIONS, results):
            if found and legacy:
                logger.info(f"[Identity] {uid} resolved from legacy collection '{collection}' as {role}")
                return self._to_profile(uid, legacy, role)

        logger.info(f"[Identity] No profile found for {uid}")
        return None

    @staticmethod
    def _to_profile(uid: str, data: dict, role: str) -> UserProfile:
        return UserProfile(
            uid=data.get("uid") or uid,
            email=data.get("email", ""),
            firstName=data.get("firstName") or data.get("first_name") or "",
            lastName=data.get("lastName") or data.get("last_name") or "",
            role=role,
            createdAt=data.get("createdAt"),
        )

    async def register(self, uid: str, email: str, first_name: str, last_name: str,
                       role: str) -> UserProfile:
        try:
            role = UserRole(role).value
        except ValueError:
            raise IdentityError(f"Unknown role '{role}'")

        existing = await self.resolve(uid)
        if existing:
            raise IdentityError(f"A {existing.role.value} profile already exists for this account")

        profile_data = {
            "uid": uid,
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "role": role,
            "createdAt": datetime.now(timezone.utc),
        }
        success, _, error = await self.db.create_document(COLLECTIONS['users'], profile_data, uid)
        if not success:
            raise Exception(f"Failed to create profile: {error}")

        logger.info(f"[Identity] Registered {email} as {role}")
        return UserProfile(**profile_data)

    def establish_session(self, profile: UserProfile) -> str:
        return create_session_token(profile.uid, profile.email, profile.role.value)

    async def list_by_role(self, role: UserRole) -> List[UserProfile]:
        profiles = {}
        success, docs, _ = await self.db.query_documents(COLLECTIONS['users'], [("role", "==", role.value)])
        if success:
            for doc in docs:
                uid = doc.get("uid") or doc.get("id")
                profiles[uid] = self._to_profile(uid, doc, role.value)

        legacy_collection = next(c for c, r in LEGACY_PROFILE_COLLECTIONS if r == role.value)
        success, docs, _ = await self.db.get_all_documents(COLLECTIONS[legacy_collection])
        if success:
            for doc in docs:
                uid = doc.get("uid") or doc.get("id")
                profiles.setdefault(uid, self._to_profile(uid, doc, role.value))

        return list(profiles.values())

    async def find_maintenance_staff(self, email: str) -> Optional[UserProfile]:
        """Maintenance profile with this email, or None when the email is not known staff."""
        if not email:
            return None
        for profile in await self.list_by_role(UserRole.MAINTENANCE):
            if profile.email.lower() == email.lower():
                return profile
        return None


identity_service = IdentityService()

# Overview: User Registry; usernames, roles, admin protections and credential checks.

"""
User Registry

Invariants:
- usernames are unique (exact match)
- at least one admin exists at all times
- the default admin (id ``default-admin``) can never be deleted, never be
  demoted, and can only be edited by itself
- the registry is never empty: it is re-seeded with the default admin

SECURITY NOTE: credentials are stored and compared in plaintext. This is a
local, single-device tool; do not reuse these passwords elsewhere.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import replace
from typing import Callable, Optional

from ..errors import (
    DefaultAdminProtection,
    DuplicateUsername,
    InvalidCredentials,
    LastAdminProtection,
    UserNotFound,
)
from ..models import ROLE_ADMIN, User
from .products_service import new_id
from .storage_service import PersistedSlot

logger = logging.getLogger(__name__)


def users_slot(key: str, backend, default_admin: User) -> PersistedSlot[list[User]]:
    return PersistedSlot(
        key,
        lambda: [replace(default_admin)],
        backend=backend,
        decode=lambda doc: [User.from_dict(u) for u in doc],
        encode=lambda users: [u.to_dict() for u in users],
    )


class UserRegistry:

    def __init__(
        self,
        slot: PersistedSlot[list[User]],
        default_admin: User,
        *,
        id_factory: Callable[[str], str] = new_id,
    ):
        self.slot = slot
        self.default_admin = default_admin
        self.id_factory = id_factory

    def is_default_admin(self, user_or_id) -> bool:
        user_id = user_or_id.id if isinstance(user_or_id, User) else user_or_id
        return user_id == self.default_admin.id

    def list(self) -> list[User]:
        return list(self._users())

    def _users(self) -> list[User]:
        users = self.slot.get()
        if not users:
            # Never leave the system without a way in
            logger.warning("User registry empty; seeding default admin")
            users = self.slot.set([replace(self.default_admin)])
        return users

    def get_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self._users() if u.id == user_id), None)

    def get_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._users() if u.username == username), None)

    def require(self, user_id: str) -> User:
        user = self.get_by_id(user_id)
        if user is None:
            raise UserNotFound("User not found", details={"user_id": user_id})
        return user

    def _admin_count(self) -> int:
        return sum(1 for u in self._users() if u.is_admin)

    def add(self, patch: dict) -> User:
        """
        Create a user from a validated patch.

        Raises:
            DuplicateUsername: If the username is taken
        """
        username = patch["username"]
        if self.get_by_username(username) is not None:
            raise DuplicateUsername("Username already exists.", details={"username": username})

        user = User(
            id=self.id_factory("user"),
            username=username,
            password=patch["password"],
            role=patch["role"],
        )
        self.slot.set(lambda prev: [*prev, user])
        logger.info("Created user id=%s username=%s role=%s", user.id, user.username, user.role)
        return user

    def update(self, user_id: str, patch: dict, actor: Optional[User] = None) -> User:
        """
        Merge a validated patch into a user.

        A blank or absent password keeps the current one.

        Raises:
            UserNotFound: If user_id does not exist
            DefaultAdminProtection: If someone other than the default admin edits it,
                or the edit would demote it
            LastAdminProtection: If the edit would demote the only admin
            DuplicateUsername: If renaming onto another user's username
        """
        target = self.require(user_id)
        if self.is_default_admin(user_id) and (actor is None or not self.is_default_admin(actor)):
            raise DefaultAdminProtection("You are not allowed to edit this user.")

        new_role = patch.get("role")
        demoting = target.is_admin and new_role is not None and new_role != ROLE_ADMIN

        if demoting and self.is_default_admin(target):
            raise DefaultAdminProtection("The default admin's role cannot be changed.")

        if demoting and self._admin_count() == 1:
            raise LastAdminProtection("Cannot change the role of the only admin.")

        new_username = patch.get("username")
        if new_username and any(u.username == new_username and u.id != user_id for u in self._users()):
            raise DuplicateUsername("The new username already exists.", details={"username": new_username})

        updated = replace(
            target,
            username=new_username or target.username,
            role=new_role or target.role,
            password=patch.get("password") or target.password,
        )
        self.slot.set(lambda prev: [updated if u.id == user_id else u for u in prev])
        logger.info("Updated user id=%s", user_id)
        return updated

    def delete(self, user_id: str) -> User:
        """
        Remove a user.

        Raises:
            UserNotFound: If user_id does not exist
            DefaultAdminProtection: If user_id is the default admin
            LastAdminProtection: If user_id is the only admin
        """
        target = self.require(user_id)
        if self.is_default_admin(target):
            raise DefaultAdminProtection("The default admin cannot be deleted.")
        if target.is_admin and self._admin_count() == 1:
            raise LastAdminProtection("Cannot delete the only admin.")

        self.slot.set(lambda prev: [u for u in prev if u.id != user_id])
        logger.info("Deleted user id=%s username=%s", target.id, target.username)
        return target

    def authenticate(self, username: str, password: str) -> User:
        """
        Exact username + password match.

        Raises:
            InvalidCredentials: If no user matches
        """
        user = self.get_by_username(username or "")
        if user is None or not hmac.compare_digest(
            (user.password or "").encode("utf-8"), (password or "").encode("utf-8")
        ):
            raise InvalidCredentials("Invalid username or password.")
        return user

    def replace_all(self, users: list[User]) -> None:
        """Wholesale replacement (restore from backup); an empty list re-seeds the default admin."""
        self.slot.set(list(users) or [replace(self.default_admin)])
        logger.info("Replaced user registry with %d users", len(users))

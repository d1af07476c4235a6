# Overview: Per-client sign-in sessions; bearer tokens, login, logout and role checks.

"""
Session tokens

Each successful login issues a random bearer token to that client. The
token itself is never stored: the auth slot keeps a list of AuthSession
records keyed by the token's SHA-256 hash.

Only the identity is trusted from a session record; role and username are
always re-read from the User Registry, so a deleted or edited user takes
effect on the very next request.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import replace
from typing import Callable, Optional

from ..errors import InvalidCredentials, NotAuthenticated, PermissionDenied
from ..models import AuthSession, User
from .auth_service import UserRegistry
from .storage_service import PersistedSlot
from lahemir.time_utils import now_iso

logger = logging.getLogger(__name__)


def auth_sessions_slot(key: str, backend) -> PersistedSlot[list[AuthSession]]:
    return PersistedSlot(
        key,
        list,
        backend=backend,
        decode=lambda doc: [AuthSession.from_dict(s) for s in doc],
        encode=lambda sessions: [s.to_dict() for s in sessions],
    )


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy), sent to the client once."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class Session:

    def __init__(
        self,
        slot: PersistedSlot[list[AuthSession]],
        users: UserRegistry,
        *,
        clock: Callable[[], str] = now_iso,
        token_factory: Callable[[], str] = generate_token,
    ):
        self.slot = slot
        self.users = users
        self.clock = clock
        self.token_factory = token_factory

    def _find(self, token: Optional[str]) -> Optional[AuthSession]:
        if not token:
            return None
        token_hash = hash_token(token)
        return next((s for s in self.slot.get() if s.token_hash == token_hash), None)

    def login(self, username: str, password: str, current_token: Optional[str] = None) -> tuple[User, str]:
        """
        Authenticate and open a session.

        A failed attempt also ends the session ``current_token`` belonged to.

        Returns:
            (user, token)

        Raises:
            InvalidCredentials: If no user matches
        """
        try:
            user = self.users.authenticate(username, password)
        except InvalidCredentials:
            if current_token:
                self.logout(current_token)
            raise

        token = self.token_factory()
        record = AuthSession(
            token_hash=hash_token(token),
            user_id=user.id,
            username=user.username,
            role=user.role,
            created_at=self.clock(),
        )
        self.slot.set(lambda prev: [*prev, record])
        logger.info("User %s logged in", user.username)
        return user, token

    def logout(self, token: Optional[str]) -> bool:
        record = self._find(token)
        if record is None:
            return False
        self.slot.set(lambda prev: [s for s in prev if s.token_hash != record.token_hash])
        logger.info("User %s logged out", record.username)
        return True

    def current_user(self, token: Optional[str]) -> Optional[User]:
        record = self._find(token)
        if record is None:
            return None
        return self.users.get_by_id(record.user_id)

    def require_user(self, token: Optional[str]) -> User:
        user = self.current_user(token)
        if user is None:
            raise NotAuthenticated("You must be logged in.")
        return user

    def has_role(self, token: Optional[str], *roles: str) -> bool:
        user = self.current_user(token)
        return user is not None and user.role in roles

    def require_role(self, token: Optional[str], *roles: str) -> User:
        user = self.require_user(token)
        if user.role not in roles:
            raise PermissionDenied(
                "You do not have permission for this action.",
                details={"required_roles": list(roles), "role": user.role},
            )
        return user

    def revalidate(self) -> int:
        """
        Drop sessions whose user no longer exists and refresh the rest.

        Returns the number of sessions dropped.
        """
        kept = []
        dropped = 0
        changed = False
        for record in self.slot.get():
            user = self.users.get_by_id(record.user_id)
            if user is None:
                logger.info("Session user %s no longer exists; logging out", record.username)
                dropped += 1
                changed = True
                continue
            if user.username != record.username or user.role != record.role:
                record = replace(record, username=user.username, role=user.role)
                changed = True
            kept.append(record)
        if changed:
            self.slot.set(kept)
        return dropped

"""Role lookup for the acting administrator."""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from firebase_admin import auth

from hymnal_admin.config import AdminConfig
from hymnal_admin.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

ROLE_USER = 'user'
ROLE_PREMIUM = 'premium'
ROLE_ADMIN = 'admin'
ROLE_SUPER_ADMIN = 'super_admin'

ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)


@dataclass
class Actor:
    """The authenticated administrator performing an operation."""
    uid: str
    email: Optional[str] = None

    @property
    def label(self) -> str:
        return self.email or self.uid or 'unknown'


def actor_from_email(email: str) -> Actor:
    """Resolve an actor via Firebase Auth."""
    try:
        user = auth.get_user_by_email(email)
    except auth.UserNotFoundError:
        raise NotFoundError('User', email)
    return Actor(uid=user.uid, email=user.email)


def actor_from_id_token(id_token: str) -> Actor:
    """Verify a Firebase ID token and build the actor it names."""
    decoded = auth.verify_id_token(id_token)
    return Actor(uid=decoded['uid'], email=decoded.get('email'))


class AuthorizationService:
    """Reads users/{uid}/role, with a short per-uid cache."""

    def __init__(self, root, config: AdminConfig, clock=time.monotonic):
        self.users_ref = root.child('users')
        self.config = config
        self._clock = clock
        self._role_cache: Dict[str, Tuple[str, float]] = {}

    def get_role(self, uid: str, email: Optional[str] = None) -> str:
        if self.config.is_super_admin_email(email):
            return ROLE_SUPER_ADMIN

        cached = self._role_cache.get(uid)
        if cached and self._clock() - cached[1] < self.config.role_cache_seconds:
            return cached[0]

        role = self.users_ref.child(uid).child('role').get()
        role = str(role).lower() if role else ROLE_USER
        if role not in (ROLE_USER, ROLE_PREMIUM, ROLE_ADMIN, ROLE_SUPER_ADMIN):
            role = ROLE_USER

        self._role_cache[uid] = (role, self._clock())
        logger.debug("Role for %s: %s", uid, role)
        return role

    def clear_cache(self) -> None:
        self._role_cache.clear()

    def require_admin(self, actor: Optional[Actor]) -> str:
        if actor is None:
            raise PermissionDeniedError('User not authenticated')
        role = self.get_role(actor.uid, actor.email)
        if role not in ADMIN_ROLES:
            raise PermissionDeniedError('Admin access required')
        return role

    def require_super_admin(self, actor: Optional[Actor]) -> str:
        if actor is None:
            raise PermissionDeniedError('User not authenticated')
        role = self.get_role(actor.uid, actor.email)
        if role != ROLE_SUPER_ADMIN:
            raise PermissionDeniedError('Super admin access required')
        return role

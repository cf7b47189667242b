"""User sessions, premium access and trial requests.

Paths:
    users/{uid}                       user profile (role, isPremium, ...)
    users/{uid}/sessions/{deviceId}   one record per signed-in device
    admin/trial_requests/{id}         trial requests (legacy: trial_requests/{id})
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from hymnal_admin.authorization import ADMIN_ROLES, ROLE_PREMIUM, ROLE_USER, Actor
from hymnal_admin.config import AdminConfig
from hymnal_admin.database import as_dict, parse_timestamp, utc_now
from hymnal_admin.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

USERS_PATH = 'users'
TRIAL_REQUESTS_PATH = 'admin/trial_requests'
LEGACY_TRIAL_REQUESTS_PATH = 'trial_requests'

DEVICE_TYPES = ('phone', 'tablet', 'web')


class SessionAdminService:
    """Admin view over users, their device sessions and premium status."""

    def __init__(self, root, config: AdminConfig, clock=utc_now):
        self.root = root
        self.users_ref = root.child(USERS_PATH)
        self.config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> List[Dict[str, Any]]:
        users = []
        for uid, data in as_dict(self.users_ref.get()).items():
            if not isinstance(data, dict):
                continue
            user = dict(data)
            user.pop('sessions', None)
            user['uid'] = uid
            users.append(user)
        users.sort(key=lambda u: str(u.get('email') or ''))
        return users

    def get_user(self, uid: str) -> Dict[str, Any]:
        data = self.users_ref.child(uid).get()
        if not isinstance(data, dict):
            raise NotFoundError('User', uid)
        user = dict(data)
        user['uid'] = uid
        return user

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_active_sessions(self, uid: str) -> List[Dict[str, Any]]:
        """Sessions not yet expired; missing or unparsable expiry counts as active."""
        now = self._clock()
        sessions = []
        raw = as_dict(self.users_ref.child(uid).child('sessions').get())
        for session_id, data in raw.items():
            if not isinstance(data, dict):
                continue
            session = dict(data)
            session['sessionId'] = session_id
            expires_at = parse_timestamp(session.get('sessionExpiresAt'))
            if expires_at is not None and expires_at <= now:
                continue
            sessions.append(session)
        sessions.sort(key=lambda s: str(s.get('sessionCreatedAt') or ''))
        return sessions

    def get_device_session_info(self, uid: str) -> Dict[str, Any]:
        sessions = self.get_active_sessions(uid)
        counts = {t: 0 for t in DEVICE_TYPES}
        for session in sessions:
            device_type = session.get('deviceType') or 'unknown'
            if device_type in counts:
                counts[device_type] += 1
        limits = self.config.session_limits
        return {
            'totalSessions': len(sessions),
            'phoneCount': counts['phone'],
            'tabletCount': counts['tablet'],
            'webCount': counts['web'],
            'sessions': sessions,
            'limits': {
                'maxPhones': limits.get('phone'),
                'maxTablets': limits.get('tablet'),
                'maxWeb': limits.get('web'),
            },
        }

    def remove_all_sessions(self, uid: str) -> None:
        self.get_user(uid)
        self.users_ref.child(uid).child('sessions').delete()
        logger.info("Removed all sessions for user %s", uid)

    def remove_session(self, uid: str, device_id: str) -> None:
        session_ref = self.users_ref.child(uid).child('sessions').child(device_id)
        if session_ref.get() is None:
            raise NotFoundError('Session', f"{uid}/{device_id}")
        session_ref.delete()
        logger.info("Removed session %s for user %s", device_id, uid)

    # ------------------------------------------------------------------
    # Premium
    # ------------------------------------------------------------------

    def set_premium(self, uid: str, is_premium: bool, actor: Actor,
                    duration_days: Optional[float] = None) -> Dict[str, Any]:
        """Grant or revoke premium access.

        Args:
            uid: Target user.
            is_premium: True to grant, False to revoke.
            actor: Admin performing the change, recorded as premiumGrantedBy.
            duration_days: Optional grant length; stored as premiumExpiryDate.

        Admin and super admin roles are kept as they are.
        """
        user = self.get_user(uid)
        if duration_days is not None and duration_days <= 0:
            raise ValidationError('Duration must be positive', field='duration_days')

        now = self._clock()
        current_role = str(user.get('role') or ROLE_USER).lower()
        if current_role in ADMIN_ROLES:
            role = current_role
        else:
            role = ROLE_PREMIUM if is_premium else ROLE_USER

        updates = {
            'isPremium': is_premium,
            'role': role,
            'premiumGrantedAt': now.isoformat() if is_premium else None,
            'premiumGrantedBy': actor.label,
        }
        if is_premium and duration_days is not None:
            updates['premiumExpiryDate'] = (now + timedelta(days=duration_days)).isoformat()
        elif not is_premium:
            updates['premiumExpiryDate'] = None

        self.users_ref.child(uid).update(updates)
        logger.info("Premium %s for user %s by %s",
                    'granted' if is_premium else 'revoked', uid, actor.label)
        return self.get_user(uid)

    # ------------------------------------------------------------------
    # Trial requests
    # ------------------------------------------------------------------

    def _trial_requests_ref(self):
        """Admin path when it holds requests, the legacy path otherwise."""
        admin_ref = self.root.child(TRIAL_REQUESTS_PATH)
        if admin_ref.get():
            return admin_ref
        legacy_ref = self.root.child(LEGACY_TRIAL_REQUESTS_PATH)
        if legacy_ref.get():
            logger.info("Using legacy trial_requests path")
            return legacy_ref
        return admin_ref

    def list_trial_requests(self) -> List[Dict[str, Any]]:
        requests = []
        for request_id, data in as_dict(self._trial_requests_ref().get()).items():
            if not isinstance(data, dict):
                continue
            request = dict(data)
            request['id'] = request_id
            requests.append(request)

        def _timestamp(r):
            try:
                return int(r.get('requestedAtTimestamp') or 0)
            except (TypeError, ValueError):
                return 0

        requests.sort(key=_timestamp, reverse=True)
        return requests

    def _get_trial_request(self, request_id: str):
        ref = self._trial_requests_ref().child(request_id)
        data = ref.get()
        if not isinstance(data, dict):
            raise NotFoundError('Trial request', request_id)
        return ref, data

    def approve_trial_request(self, request_id: str, actor: Actor) -> Dict[str, Any]:
        """Approve a request and grant premium to the requesting user."""
        ref, data = self._get_trial_request(request_id)
        ref.update({
            'status': 'approved',
            'approvedAt': self._clock().isoformat(),
            'approvedBy': actor.label,
        })
        logger.info("Trial request %s approved by %s", request_id, actor.label)

        user_id = data.get('userId')
        if user_id and user_id != 'null':
            self.set_premium(user_id, True, actor)
        else:
            logger.warning("Trial request %s has no userId; premium not granted", request_id)

        result = dict(ref.get() or {})
        result['id'] = request_id
        return result

    def reject_trial_request(self, request_id: str, actor: Actor) -> Dict[str, Any]:
        ref, _ = self._get_trial_request(request_id)
        ref.update({
            'status': 'rejected',
            'rejectedAt': self._clock().isoformat(),
            'rejectedBy': actor.label,
        })
        logger.info("Trial request %s rejected by %s", request_id, actor.label)
        result = dict(ref.get() or {})
        result['id'] = request_id
        return result

"""Global update broadcast.

Writing app_global_version tells every running client to compare its
local version, and optionally clear its cache, refresh collections or
force an update.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from firebase_admin.exceptions import FirebaseError

from hymnal_admin.authorization import Actor
from hymnal_admin.database import as_dict, parse_timestamp, utc_now
from hymnal_admin.errors import ValidationError
from hymnal_admin.models import (EMERGENCY_UPDATE_TYPE, UPDATE_TYPES, GlobalUpdateResult,
                                 GlobalVersion)

logger = logging.getLogger(__name__)

GLOBAL_VERSION_PATH = 'app_global_version'
COLLECTIONS_UPDATED_PATH = 'song_collection_last_updated'
UPDATE_LOG_PATH = 'app_update_log'
UPDATE_STATS_PATH = 'app_update_stats'
FORCE_UPDATE_PATH = 'app_force_update'

DEFAULT_VERSION = '1.0.0'
EMERGENCY_MESSAGE = '🚨 Emergency cache flush - please restart the app'
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

PRESETS = {
    'free_update': {
        'message': 'New songs are available',
        'update_type': 'recommended',
        'notify_user': True,
    },
    'low_cost': {
        'message': 'Song collections have been updated',
        'update_type': 'recommended',
        'update_collections': True,
        'notify_user': True,
    },
    'full_update': {
        'message': 'Please refresh to get the latest songs',
        'update_type': 'required',
        'clear_cache': True,
        'update_collections': True,
        'notify_user': True,
    },
}


def _version_parts(version: str) -> List[int]:
    parts = []
    for part in str(version or '').split('.'):
        try:
            parts.append(int(part))
        except ValueError:
            continue
    return parts


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as version a is older, equal or newer than b."""
    pa, pb = _version_parts(a), _version_parts(b)
    length = max(len(pa), len(pb))
    pa += [0] * (length - len(pa))
    pb += [0] * (length - len(pb))
    if pa < pb:
        return -1
    if pa > pb:
        return 1
    return 0


def increment_version(version: str) -> str:
    """Bump the patch of x.y.z[...] to x.y.(z+1); shorter versions become 1.0.1.

    A non-numeric patch counts as 0 and anything after it is dropped.
    """
    parts = str(version or '').split('.')
    if len(parts) < 3:
        return '1.0.1'
    try:
        patch = int(parts[2])
    except ValueError:
        patch = 0
    return f"{parts[0]}.{parts[1]}.{patch + 1}"


def _count(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class GlobalUpdateService:
    """Triggers and inspects global updates."""

    def __init__(self, root, clock=utc_now):
        self.root = root
        self._clock = clock

    def get_global_version(self) -> Optional[GlobalVersion]:
        data = self.root.child(GLOBAL_VERSION_PATH).get()
        if not isinstance(data, dict):
            return None
        return GlobalVersion.from_dict(data)

    def _publish(self, record: GlobalVersion) -> None:
        self.root.child(GLOBAL_VERSION_PATH).set(record.to_dict())
        self.root.child(COLLECTIONS_UPDATED_PATH).set(record.triggered_at)

    def _log(self, record: GlobalVersion, action: str) -> None:
        entry = record.to_dict()
        entry['action'] = action
        entry['timestamp'] = record.triggered_at
        self.root.child(UPDATE_LOG_PATH).push(entry)

    def _record_stats(self, record: GlobalVersion) -> None:
        """Bump app_update_stats; malformed stored values restart from 0."""
        stats_ref = self.root.child(UPDATE_STATS_PATH)
        stats = stats_ref.get()
        if not isinstance(stats, dict):
            if stats is not None:
                logger.warning("Resetting malformed %s node", UPDATE_STATS_PATH)
            stats = {}
        type_counts = stats.get('update_types')
        type_counts = dict(type_counts) if isinstance(type_counts, dict) else {}
        type_counts[record.type] = _count(type_counts.get(record.type)) + 1
        stats_ref.update({
            'total_updates': _count(stats.get('total_updates')) + 1,
            'last_update': record.triggered_at,
            'update_types': type_counts,
        })

    def trigger_global_update(self, actor: Actor, version: str, message: str = '',
                              update_type: str = 'optional', force_update: bool = False,
                              clear_cache: bool = False, update_collections: bool = False,
                              notify_user: bool = False) -> GlobalVersion:
        """Broadcast a new global version to every client.

        Args:
            actor: Admin triggering the update.
            version: Version string clients compare against their own.
            message: Text shown to users when notify_user is set.
            update_type: One of optional, recommended, required, critical.
            force_update: Clients must update before continuing.
            clear_cache: Clients drop their cached song data.
            update_collections: Clients re-download collection listings.
            notify_user: Clients show the message.

        Returns:
            The GlobalVersion written to app_global_version.
        """
        version = (version or '').strip()
        if not version:
            raise ValidationError('Version is required', field='version')
        if update_type not in UPDATE_TYPES:
            raise ValidationError(f"Unknown update type: {update_type}", field='update_type')

        record = GlobalVersion(
            version=version,
            message=message or '',
            type=update_type,
            force_update=force_update,
            clear_cache=clear_cache,
            update_collections=update_collections,
            notify_user=notify_user,
            triggered_at=self._clock().isoformat(),
            triggered_by=actor.email or 'unknown',
            triggered_by_uid=actor.uid or 'unknown',
        )
        self._publish(record)
        self._log(record, 'global_update_triggered')
        try:
            self._record_stats(record)
        except FirebaseError as e:
            logger.warning("Failed to update global update stats: %s", e)
        logger.info("Global update %s (%s) triggered by %s", version, update_type, actor.label)
        return record

    def trigger_preset(self, actor: Actor, preset: str,
                       version: Optional[str] = None) -> GlobalVersion:
        """Trigger one of PRESETS; version defaults to the next patch."""
        if preset not in PRESETS:
            raise ValidationError(f"Unknown preset: {preset}", field='preset')
        if not version:
            current = self.get_global_version()
            version = increment_version(current.version if current else DEFAULT_VERSION)
        return self.trigger_global_update(actor, version, **PRESETS[preset])

    def emergency_cache_flush(self, actor: Actor) -> GlobalVersion:
        current = self.get_global_version()
        now = self._clock().isoformat()
        record = GlobalVersion(
            version=increment_version(current.version if current else DEFAULT_VERSION),
            message=EMERGENCY_MESSAGE,
            type=EMERGENCY_UPDATE_TYPE,
            force_update=True,
            clear_cache=True,
            update_collections=True,
            notify_user=True,
            triggered_at=now,
            triggered_by=actor.email or 'unknown',
            triggered_by_uid=actor.uid or 'unknown',
            emergency=True,
        )
        self._publish(record)
        self.root.child(FORCE_UPDATE_PATH).set({
            'enabled': True,
            'timestamp': now,
            'reason': 'emergency_cache_flush',
        })
        self._log(record, 'emergency_cache_flush')
        logger.warning("Emergency cache flush to %s by %s", record.version, actor.label)
        return record

    def clear_force_update(self) -> None:
        self.root.child(FORCE_UPDATE_PATH).child('enabled').set(False)
        logger.info("Force update flag cleared")

    def get_update_stats(self) -> Dict[str, Any]:
        stats = self.root.child(UPDATE_STATS_PATH).get()
        if not isinstance(stats, dict):
            return {'total_updates': 0, 'last_update': None, 'update_types': {}}
        return stats

    def get_recent_updates(self, limit: int = 10) -> List[Dict[str, Any]]:
        entries = []
        for key, data in as_dict(self.root.child(UPDATE_LOG_PATH).get()).items():
            if not isinstance(data, dict):
                continue
            entry = dict(data)
            entry['id'] = key
            entries.append(entry)
        entries.sort(key=lambda e: parse_timestamp(e.get('timestamp')) or _EPOCH, reverse=True)
        return entries[:limit]

    def check_for_updates(self, local_version: str) -> GlobalUpdateResult:
        """What a client at local_version would do with the current broadcast."""
        latest = self.get_global_version()
        if latest is None:
            return GlobalUpdateResult(
                has_update=False,
                current_version=local_version,
                latest_version=local_version,
                message='No global version set',
            )

        # A client already at or past the broadcast ignores its flags and message.
        has_update = compare_versions(latest.version, local_version) > 0
        return GlobalUpdateResult(
            has_update=has_update,
            current_version=local_version,
            latest_version=latest.version,
            message=latest.message if has_update else 'Up to date',
            force_update=has_update and latest.force_update,
            update_type=latest.type,
            clear_cache=has_update and latest.clear_cache,
            update_collections=has_update and latest.update_collections,
        )

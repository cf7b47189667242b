"""Firebase Admin SDK initialization and timestamp helpers."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, db

from hymnal_admin.config import AdminConfig, load_config

logger = logging.getLogger(__name__)


def init_firebase(config: AdminConfig) -> None:
    """Initialize the default Firebase app once."""
    if firebase_admin._apps:
        return

    config.validate()
    cred = credentials.Certificate(str(config.admin_key_path))
    firebase_admin.initialize_app(cred, {
        'databaseURL': config.database_url
    })
    logger.info("Firebase initialized for %s", config.database_url)


def get_root(config: Optional[AdminConfig] = None) -> db.Reference:
    """Return a reference to the database root, initializing on first use."""
    init_firebase(config or load_config())
    return db.reference('/')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso(clock=None) -> str:
    """ISO-8601 timestamp used for every *_at field written by the tool."""
    return (clock or utc_now)().isoformat()


def server_timestamp() -> str:
    """Timestamp for song_collection_last_updated and log entries."""
    return now_iso()


def as_dict(value) -> Dict[str, Any]:
    """Normalize a child listing to a dict keyed by child name.

    The Realtime Database returns integer-keyed children (song numbers
    "1", "2", ...) as a list with None holes.
    """
    if not value:
        return {}
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value) if v is not None}
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items() if v is not None}
    return {}


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO string or epoch milliseconds; None when unparsable.

    Naive values are treated as UTC so they compare with utc_now().
    """
    if value is None or value == '':
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        text = str(value).replace('Z', '+00:00')
        parsed = datetime.fromisoformat(text)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

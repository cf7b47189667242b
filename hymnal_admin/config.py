"""Configuration loading for the hymnal admin tool.

Settings come from ``firebase_config.json`` (the same file the mobile app's
Firebase console export produces, optionally extended with an ``admin``
section) and can be overridden with environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from hymnal_admin.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'firebase_config.json'
ADMIN_KEY_FILENAME = 'firebase-admin-key.json'

DEFAULT_SESSION_LIMITS = {'phone': 2, 'tablet': 1, 'web': 1}

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


@dataclass
class AdminConfig:
    """Resolved settings for one admin tool run."""
    database_url: str = ''
    admin_key_path: Optional[Path] = None
    super_admin_emails: Tuple[str, ...] = ()
    log_level: str = 'INFO'
    collections_cache_seconds: int = 180
    role_cache_seconds: int = 60
    session_limits: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_SESSION_LIMITS))
    raw: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ConfigurationError unless Firebase can be initialized."""
        if not self.database_url:
            raise ConfigurationError(
                "databaseURL not found. Set it in firebase_config.json "
                "or the FIREBASE_DATABASE_URL environment variable."
            )
        if self.admin_key_path is None or not Path(self.admin_key_path).exists():
            raise ConfigurationError(
                f"Admin key file not found: {self.admin_key_path}\n"
                "Please download the service account key from Firebase Console."
            )

    def is_super_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.super_admin_emails


def _search_locations() -> List[Path]:
    """Directories checked for the config and admin key, in order."""
    locations = []
    env_dir = os.getenv('HYMNAL_ADMIN_CONFIG_DIR')
    if env_dir:
        locations.append(Path(env_dir).expanduser())
    locations.extend([
        Path.cwd(),
        Path(__file__).resolve().parent.parent,  # project root
        Path('~').expanduser() / '.config' / 'hymnal-admin',
    ])
    return locations


def _find_file(filename: str, explicit: Optional[Path] = None) -> Optional[Path]:
    if explicit is not None:
        return explicit if explicit.exists() else None
    for directory in _search_locations():
        candidate = directory / filename
        if candidate.exists():
            return candidate
    return None


def _split_emails(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(',')
    return tuple(e.strip().lower() for e in value if e and e.strip())


def load_config(config_path: Optional[Path] = None) -> AdminConfig:
    """Load settings from firebase_config.json and the environment.

    Args:
        config_path: Explicit config file. Falls back to $HYMNAL_ADMIN_CONFIG
            and then to the standard search locations.

    Returns:
        The merged configuration. Nothing is validated here; call
        ``AdminConfig.validate()`` before touching Firebase.
    """
    if config_path is None and os.getenv('HYMNAL_ADMIN_CONFIG'):
        config_path = Path(os.environ['HYMNAL_ADMIN_CONFIG']).expanduser()
    if isinstance(config_path, str):
        config_path = Path(config_path)

    found = _find_file(CONFIG_FILENAME, config_path)
    raw: Dict[str, Any] = {}
    if found is not None:
        with open(found, 'r', encoding='utf-8') as f:
            raw = json.load(f)
        logger.debug("Loaded config from %s", found)
    elif config_path is not None:
        raise ConfigurationError(f"Firebase config not found at {config_path}")

    admin_section = raw.get('admin', {}) or {}

    database_url = os.getenv('FIREBASE_DATABASE_URL') or raw.get('databaseURL', '')

    key_env = os.getenv('FIREBASE_ADMIN_KEY_PATH')
    if key_env:
        admin_key_path = Path(key_env).expanduser()
    elif admin_section.get('admin_key_path'):
        admin_key_path = Path(admin_section['admin_key_path']).expanduser()
    else:
        admin_key_path = _find_file(ADMIN_KEY_FILENAME) or Path(ADMIN_KEY_FILENAME)

    emails_env = os.getenv('HYMNAL_SUPER_ADMIN_EMAILS')
    super_admins = _split_emails(emails_env if emails_env is not None
                                 else admin_section.get('super_admin_emails'))

    limits = dict(DEFAULT_SESSION_LIMITS)
    limits.update(admin_section.get('session_limits', {}) or {})

    return AdminConfig(
        database_url=database_url,
        admin_key_path=admin_key_path,
        super_admin_emails=super_admins,
        log_level=(os.getenv('HYMNAL_ADMIN_LOG_LEVEL')
                   or admin_section.get('log_level', 'INFO')).upper(),
        collections_cache_seconds=int(admin_section.get('collections_cache_seconds', 180)),
        role_cache_seconds=int(admin_section.get('role_cache_seconds', 60)),
        session_limits=limits,
        raw=raw,
    )


def configure_logging(level: str = 'INFO') -> None:
    """Send log records to stderr; CLI results go to stdout."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format=LOG_FORMAT)

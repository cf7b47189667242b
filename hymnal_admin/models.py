"""Data models for songs, collections, reports and global updates.

Each model converts to and from the JSON stored in the Realtime Database.
Key names follow what the mobile app already reads, so they mix
snake_case (songs, collections, global version) and camelCase (reports).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AccessLevel(str, Enum):
    """Who may see a collection, lowest to highest."""
    PUBLIC = 'public'
    REGISTERED = 'registered'
    PREMIUM = 'premium'
    ADMIN = 'admin'
    SUPERADMIN = 'superadmin'

    @property
    def rank(self) -> int:
        return list(AccessLevel).index(self)

    @classmethod
    def from_value(cls, value: Optional[str]) -> 'AccessLevel':
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.PUBLIC


class CollectionStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    ARCHIVED = 'archived'

    @classmethod
    def from_value(cls, value: Optional[str]) -> 'CollectionStatus':
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.ACTIVE


class ReportStatus(str, Enum):
    PENDING = 'pending'
    RESOLVED = 'resolved'
    DISMISSED = 'dismissed'


# Role names stored under users/{uid}/role mapped to the collection
# access hierarchy.
ROLE_ACCESS_RANK = {
    'guest': 0,
    'user': 1,
    'registered': 1,
    'premium': 2,
    'admin': 3,
    'super_admin': 4,
    'superadmin': 4,
}


def role_rank(role: Optional[str]) -> int:
    return ROLE_ACCESS_RANK.get((role or 'guest').lower(), 0)


@dataclass
class Verse:
    number: str
    lyrics: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Verse':
        return cls(number=str(data.get('verse_number', '')),
                   lyrics=data.get('lyrics', '') or '')

    def to_dict(self) -> Dict[str, Any]:
        return {'verse_number': self.number, 'lyrics': self.lyrics}


@dataclass
class Song:
    number: str
    title: str
    verses: List[Verse] = field(default_factory=list)
    audio_url: Optional[str] = None
    collection_id: Optional[str] = None

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_url)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], collection_id: Optional[str] = None) -> 'Song':
        raw_verses = data.get('verses') or []
        # Firebase turns integer-keyed maps into lists and back again
        if isinstance(raw_verses, dict):
            raw_verses = [raw_verses[k] for k in sorted(raw_verses, key=_natural_key)]
        verses = [Verse.from_dict(v) for v in raw_verses if isinstance(v, dict)]
        return cls(
            number=str(data.get('song_number', '')),
            title=data.get('song_title', '') or '',
            verses=verses,
            audio_url=data.get('url') or None,
            collection_id=collection_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'song_number': self.number,
            'song_title': self.title,
            'verses': [v.to_dict() for v in self.verses],
        }
        if self.audio_url:
            data['url'] = self.audio_url
        return data


def _natural_key(value: Any):
    """Sort key putting numeric strings first, in numeric order."""
    text = str(value)
    try:
        return (0, int(text), text)
    except ValueError:
        return (1, 0, text)


def song_sort_key(song: Song):
    return _natural_key(song.number)


@dataclass
class SongCollection:
    id: str
    name: str
    description: str = ''
    access_level: AccessLevel = AccessLevel.PUBLIC
    status: CollectionStatus = CollectionStatus.ACTIVE
    song_count: int = 0
    created_at: str = ''
    updated_at: str = ''
    created_by: str = ''
    updated_by: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = ('name', 'description', 'access_level', 'status', 'song_count',
                  'created_at', 'updated_at', 'created_by', 'updated_by')

    @property
    def is_active(self) -> bool:
        return self.status == CollectionStatus.ACTIVE

    @property
    def is_public(self) -> bool:
        return self.access_level == AccessLevel.PUBLIC

    @classmethod
    def from_dict(cls, collection_id: str, metadata: Dict[str, Any]) -> 'SongCollection':
        try:
            song_count = int(metadata.get('song_count', 0) or 0)
        except (TypeError, ValueError):
            song_count = 0
        return cls(
            id=collection_id,
            name=metadata.get('name') or collection_id,
            description=metadata.get('description', '') or '',
            access_level=AccessLevel.from_value(metadata.get('access_level', 'public')),
            status=CollectionStatus.from_value(metadata.get('status', 'active')),
            song_count=song_count,
            created_at=metadata.get('created_at', '') or '',
            updated_at=metadata.get('updated_at', '') or '',
            created_by=metadata.get('created_by', '') or '',
            updated_by=metadata.get('updated_by'),
            extra={k: v for k, v in metadata.items() if k not in cls.KNOWN_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            'name': self.name,
            'description': self.description,
            'access_level': self.access_level.value,
            'status': self.status.value,
            'song_count': self.song_count,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'created_by': self.created_by,
        })
        if self.updated_by is not None:
            data['updated_by'] = self.updated_by
        return data


@dataclass
class CollectionStats:
    total_collections: int
    active_collections: int
    public_collections: int
    total_songs: int
    access_level_counts: Dict[str, int]
    status_counts: Dict[str, int]

    @classmethod
    def from_collections(cls, collections: List[SongCollection]) -> 'CollectionStats':
        access_counts: Dict[str, int] = {}
        status_counts: Dict[str, int] = {}
        for c in collections:
            access_counts[c.access_level.value] = access_counts.get(c.access_level.value, 0) + 1
            status_counts[c.status.value] = status_counts.get(c.status.value, 0) + 1
        return cls(
            total_collections=len(collections),
            active_collections=sum(1 for c in collections if c.is_active),
            public_collections=sum(1 for c in collections if c.is_public),
            total_songs=sum(c.song_count for c in collections),
            access_level_counts=access_counts,
            status_counts=status_counts,
        )


@dataclass
class SongReport:
    id: str
    song_number: str
    song_title: str
    reporter_email: str
    reporter_name: str
    issue_type: str
    description: str
    created_at: str
    status: str = ReportStatus.PENDING.value
    specific_verse: Optional[str] = None
    admin_response: Optional[str] = None
    resolved_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], strict: bool = True) -> 'SongReport':
        if strict and not data.get('createdAt'):
            raise ValueError('report is missing createdAt')
        return cls(
            id=data.get('id', ''),
            song_number=str(data.get('songNumber', '')),
            song_title=data.get('songTitle', ''),
            reporter_email=data.get('reporterEmail', ''),
            reporter_name=data.get('reporterName', ''),
            issue_type=data.get('issueType', ''),
            description=data.get('description', ''),
            created_at=data.get('createdAt') or '',
            status=data.get('status', ReportStatus.PENDING.value),
            specific_verse=data.get('specificVerse'),
            admin_response=data.get('adminResponse'),
            resolved_at=data.get('resolvedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'songNumber': self.song_number,
            'songTitle': self.song_title,
            'reporterEmail': self.reporter_email,
            'reporterName': self.reporter_name,
            'issueType': self.issue_type,
            'description': self.description,
            'specificVerse': self.specific_verse,
            'createdAt': self.created_at,
            'status': self.status,
            'adminResponse': self.admin_response,
            'resolvedAt': self.resolved_at,
        }


UPDATE_TYPES = ('optional', 'recommended', 'required', 'critical')
EMERGENCY_UPDATE_TYPE = 'emergency'


@dataclass
class GlobalVersion:
    """The record broadcast at app_global_version."""
    version: str
    message: str = ''
    type: str = 'optional'
    force_update: bool = False
    clear_cache: bool = False
    update_collections: bool = False
    notify_user: bool = False
    triggered_at: str = ''
    triggered_by: str = 'unknown'
    triggered_by_uid: str = 'unknown'
    emergency: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GlobalVersion':
        return cls(
            version=str(data.get('version') or '1.0.0'),
            message=str(data.get('message') or ''),
            type=str(data.get('type') or 'optional'),
            force_update=data.get('force_update') is True,
            clear_cache=data.get('clear_cache') is True,
            update_collections=data.get('update_collections') is True,
            notify_user=data.get('notify_user') is True,
            triggered_at=data.get('triggered_at', ''),
            triggered_by=data.get('triggered_by', 'unknown'),
            triggered_by_uid=data.get('triggered_by_uid', 'unknown'),
            emergency=data.get('emergency') is True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'version': self.version,
            'message': self.message,
            'type': self.type,
            'force_update': self.force_update,
            'clear_cache': self.clear_cache,
            'update_collections': self.update_collections,
            'notify_user': self.notify_user,
            'triggered_at': self.triggered_at,
            'triggered_by': self.triggered_by,
            'triggered_by_uid': self.triggered_by_uid,
        }
        if self.emergency:
            data['emergency'] = True
        return data


@dataclass
class GlobalUpdateResult:
    has_update: bool
    current_version: str
    latest_version: str
    message: str
    force_update: bool = False
    update_type: str = 'optional'
    clear_cache: bool = False
    update_collections: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hasUpdate': self.has_update,
            'currentVersion': self.current_version,
            'latestVersion': self.latest_version,
            'message': self.message,
            'forceUpdate': self.force_update,
            'updateType': self.update_type,
            'clearCache': self.clear_cache,
            'updateCollections': self.update_collections,
        }

"""Collection management on song_collection/{id}/{metadata,songs}."""

import logging
import re
from typing import Dict, List, Optional

from hymnal_admin.authorization import Actor
from hymnal_admin.config import AdminConfig
from hymnal_admin.database import as_dict, utc_now
from hymnal_admin.errors import NotFoundError, ValidationError
from hymnal_admin.models import (
    AccessLevel, CollectionStats, CollectionStatus, Song, SongCollection, role_rank,
)

logger = logging.getLogger(__name__)

COLLECTIONS_PATH = 'song_collection'


def slugify(name: str) -> str:
    slug = name.strip().lower().replace(' ', '_')
    return re.sub(r'[^a-z0-9_]', '', slug)


class CollectionService:
    """Creates, edits and lists song collections.

    The listing is cached in memory and invalidated after every write made
    through this service.
    """

    def __init__(self, root, config: AdminConfig, clock=utc_now):
        self.root = root
        self.collections_ref = root.child(COLLECTIONS_PATH)
        self.config = config
        self._clock = clock
        self._cached: Optional[List[SongCollection]] = None
        self._cached_at = None

    def collection_ref(self, collection_id: str):
        return self.collections_ref.child(collection_id)

    def songs_ref(self, collection_id: str):
        return self.collections_ref.child(collection_id).child('songs')

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _cache_valid(self) -> bool:
        if self._cached is None or self._cached_at is None:
            return False
        age = (self._clock() - self._cached_at).total_seconds()
        return age < self.config.collections_cache_seconds

    def _load_all(self) -> List[SongCollection]:
        if self._cache_valid():
            logger.debug("Using cached collections")
            return self._cached

        nodes = as_dict(self.collections_ref.get())
        collections = []
        for collection_id, node in nodes.items():
            if not isinstance(node, dict):
                continue
            collections.append(self._from_node(collection_id, node))
        collections.sort(key=lambda c: (c.name.lower(), c.id))

        self._cached = collections
        self._cached_at = self._clock()
        logger.info("Loaded %d collections", len(collections))
        return collections

    def _from_node(self, collection_id: str, node: dict) -> SongCollection:
        metadata = node.get('metadata')
        if isinstance(metadata, dict):
            return SongCollection.from_dict(collection_id, metadata)
        logger.warning("Collection %s has no metadata, using fallback", collection_id)
        now = self._clock().isoformat()
        return SongCollection(
            id=collection_id,
            name=collection_id,
            description='Basic collection info',
            song_count=len(as_dict(node.get('songs'))),
            created_at=now,
            updated_at=now,
            created_by='system',
        )

    def list_collections(self, include_inactive: bool = False,
                         user_role: Optional[str] = None) -> List[SongCollection]:
        """List collections, optionally only those a role may see."""
        collections = self._load_all()
        result = []
        for c in collections:
            if not include_inactive and not c.is_active:
                continue
            if user_role is not None and role_rank(user_role) < c.access_level.rank:
                continue
            result.append(c)
        return result

    def get_collection(self, collection_id: str) -> SongCollection:
        node = self.collection_ref(collection_id).get()
        if not isinstance(node, dict):
            raise NotFoundError('Collection', collection_id)
        return self._from_node(collection_id, node)

    def exists(self, collection_id: str) -> bool:
        return self.collection_ref(collection_id).get() is not None

    def get_stats(self) -> CollectionStats:
        return CollectionStats.from_collections(self.list_collections(include_inactive=True))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_collection(self, name: str, description: str, actor: Actor,
                          collection_id: Optional[str] = None,
                          access_level: str = AccessLevel.ADMIN.value) -> str:
        """Create a collection and return its id.

        Without an explicit id, one is derived from the name plus the last
        five digits of the current epoch milliseconds (e.g. lagu_krismas_26346).
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError('Collection name is required', field='name')
        try:
            level = AccessLevel(access_level)
        except ValueError:
            raise ValidationError(f"Unknown access level: {access_level}", field='access_level')

        now = self._clock()
        if collection_id is None:
            slug = slugify(name) or 'collection'
            millis = int(now.timestamp() * 1000)
            collection_id = f"{slug}_{str(millis)[-5:]}"
        elif not re.match(r'^[A-Za-z0-9_-]+$', collection_id):
            raise ValidationError(f"Invalid collection id: {collection_id}", field='id')

        if self.exists(collection_id):
            raise ValidationError(f"Collection already exists: {collection_id}", field='id')

        collection = SongCollection(
            id=collection_id,
            name=name,
            description=(description or '').strip(),
            access_level=level,
            status=CollectionStatus.ACTIVE,
            song_count=0,
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
            created_by=actor.uid,
        )
        self.collection_ref(collection_id).child('metadata').set(collection.to_dict())
        logger.info("Created collection %s (%s)", collection_id, name)
        self.invalidate_cache()
        return collection_id

    def update_collection(self, collection_id: str, actor: Actor,
                          name: Optional[str] = None,
                          description: Optional[str] = None,
                          access_level: Optional[str] = None,
                          status: Optional[str] = None) -> SongCollection:
        """Update the given metadata fields; others are left untouched."""
        self.get_collection(collection_id)

        updates = {}
        if name is not None:
            if not name.strip():
                raise ValidationError('Collection name is required', field='name')
            updates['name'] = name.strip()
        if description is not None:
            updates['description'] = description.strip()
        if access_level is not None:
            try:
                updates['access_level'] = AccessLevel(access_level).value
            except ValueError:
                raise ValidationError(f"Unknown access level: {access_level}", field='access_level')
        if status is not None:
            try:
                updates['status'] = CollectionStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown status: {status}", field='status')

        updates['updated_at'] = self._clock().isoformat()
        updates['updated_by'] = actor.uid
        self.collection_ref(collection_id).child('metadata').update(updates)
        logger.info("Updated collection %s: %s", collection_id, sorted(updates))
        self.invalidate_cache()
        return self.get_collection(collection_id)

    def delete_collection(self, collection_id: str) -> None:
        """Remove the collection with all of its songs."""
        self.get_collection(collection_id)
        self.collection_ref(collection_id).delete()
        logger.info("Deleted collection %s", collection_id)
        self.invalidate_cache()

    def add_song_to_collection(self, collection_id: str, song: Song) -> None:
        self.get_collection(collection_id)
        self.songs_ref(collection_id).child(song.number).set(song.to_dict())
        logger.info("Song %s written to collection %s", song.number, collection_id)
        self.refresh_song_count(collection_id)

    def remove_song_from_collection(self, collection_id: str, song_number: str) -> None:
        song_ref = self.songs_ref(collection_id).child(song_number)
        if song_ref.get() is None:
            raise NotFoundError('Song', f"{collection_id}/{song_number}")
        song_ref.delete()
        logger.info("Song %s removed from collection %s", song_number, collection_id)
        self.refresh_song_count(collection_id)

    def refresh_song_count(self, collection_id: str) -> int:
        """Store the actual number of songs in metadata/song_count."""
        count = len(as_dict(self.songs_ref(collection_id).get()))
        self.collection_ref(collection_id).child('metadata').update({
            'song_count': count,
            'updated_at': self._clock().isoformat(),
        })
        self.invalidate_cache()
        return count

    def recount_all(self) -> Dict[str, int]:
        counts = {}
        for collection_id in as_dict(self.collections_ref.get()):
            counts[collection_id] = self.refresh_song_count(collection_id)
        return counts

    def bulk_update_access(self, collection_ids: List[str], access_level: str) -> None:
        """Change the access level of several collections in one write."""
        if not collection_ids:
            raise ValidationError('No collections given', field='collection_ids')
        try:
            level = AccessLevel(access_level).value
        except ValueError:
            raise ValidationError(f"Unknown access level: {access_level}", field='access_level')
        for collection_id in collection_ids:
            if not self.exists(collection_id):
                raise NotFoundError('Collection', collection_id)

        now = self._clock().isoformat()
        updates = {}
        for collection_id in collection_ids:
            prefix = f"{COLLECTIONS_PATH}/{collection_id}/metadata"
            updates[f"{prefix}/access_level"] = level
            updates[f"{prefix}/updated_at"] = now
        self.root.update(updates)
        logger.info("Set access level %s on %d collections", level, len(collection_ids))
        self.invalidate_cache()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def invalidate_cache(self) -> None:
        self._cached = None
        self._cached_at = None

    def cache_status(self) -> dict:
        age = None
        if self._cached_at is not None:
            age = int((self._clock() - self._cached_at).total_seconds())
        return {
            'cached': len(self._cached) if self._cached is not None else 0,
            'cache_age': age,
            'is_valid': self._cache_valid(),
        }

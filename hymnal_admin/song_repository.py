"""Song CRUD inside collections (song_collection/{id}/songs/{number})."""

import logging
from typing import List, Optional

from firebase_admin.exceptions import FirebaseError

from hymnal_admin.collection_service import CollectionService
from hymnal_admin.database import as_dict
from hymnal_admin.errors import HymnalAdminError, NotFoundError, ValidationError
from hymnal_admin.models import Song, Verse, song_sort_key

logger = logging.getLogger(__name__)


def validate_song(song: Song) -> None:
    """Trim the song's text fields in place and reject songs the app could not display."""
    song.number = str(song.number or '').strip()
    song.title = str(song.title or '').strip()
    if not song.number:
        raise ValidationError('Song number is required', field='number')
    if any(c in song.number for c in '.#$[]/'):
        raise ValidationError(f"Invalid song number: {song.number}", field='number')
    if not song.title:
        raise ValidationError('Song title is required', field='title')
    verses = [Verse(str(v.number or '').strip(), str(v.lyrics or '').strip())
              for v in song.verses]
    song.verses = [v for v in verses if v.number and v.lyrics]
    if not song.verses:
        raise ValidationError('Please add at least one verse with content.', field='verses')


class SongRepository:
    """Songs stored under each collection, keyed by song number."""

    def __init__(self, root, collections: CollectionService):
        self.root = root
        self.collections = collections

    def _song_ref(self, collection_id: str, number: str):
        return self.collections.songs_ref(collection_id).child(number)

    def list_songs(self, collection_id: str) -> List[Song]:
        self.collections.get_collection(collection_id)
        songs = []
        for key, data in as_dict(self.collections.songs_ref(collection_id).get()).items():
            if not isinstance(data, dict):
                continue
            try:
                song = Song.from_dict(data, collection_id=collection_id)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping unparsable song %s/%s: %s", collection_id, key, e)
                continue
            if not song.number:
                song.number = key
            songs.append(song)
        songs.sort(key=song_sort_key)
        return songs

    def get_song(self, collection_id: str, number: str) -> Song:
        data = self._song_ref(collection_id, number).get()
        if not isinstance(data, dict):
            raise NotFoundError('Song', f"{collection_id}/{number}")
        return Song.from_dict(data, collection_id=collection_id)

    def song_exists(self, collection_id: str, number: str) -> bool:
        return self._song_ref(collection_id, number).get() is not None

    def search_songs(self, query: str, collection_id: Optional[str] = None) -> List[Song]:
        """Match by exact number, or by title or lyrics substring."""
        query = (query or '').strip().lower()
        if not query:
            return []
        if collection_id:
            collection_ids = [collection_id]
        else:
            collection_ids = [c.id for c in self.collections.list_collections(include_inactive=True)]

        matches = []
        for cid in collection_ids:
            for song in self.list_songs(cid):
                if (song.number.lower() == query
                        or query in song.title.lower()
                        or any(query in v.lyrics.lower() for v in song.verses)):
                    matches.append(song)
        return matches

    def find_song_collections(self, number: str) -> List[str]:
        return [c.id for c in self.collections.list_collections(include_inactive=True)
                if self.song_exists(c.id, number)]

    def add_song(self, collection_id: str, song: Song) -> Song:
        validate_song(song)
        if self.song_exists(collection_id, song.number):
            raise ValidationError(
                f"Song {song.number} already exists in {collection_id}", field='number')
        self.collections.add_song_to_collection(collection_id, song)
        song.collection_id = collection_id
        return song

    def update_song(self, collection_id: str, original_number: str, song: Song,
                    new_collection_id: Optional[str] = None) -> Song:
        """Save an edited song.

        A changed number recreates the node under the new key; a changed
        collection moves the song. Removing the song from its old collection
        is best effort: the edited song is already saved at that point.
        """
        validate_song(song)
        self.get_song(collection_id, original_number)
        target_id = new_collection_id or collection_id

        if target_id != collection_id:
            if self.song_exists(target_id, song.number):
                raise ValidationError(
                    f"Song {song.number} already exists in {target_id}", field='number')
            self.collections.add_song_to_collection(target_id, song)
            try:
                self.collections.remove_song_from_collection(collection_id, original_number)
            except (HymnalAdminError, FirebaseError) as e:
                logger.warning("Collection change for song %s left a copy in %s: %s",
                               song.number, collection_id, e)
            song.collection_id = target_id
            return song

        if song.number != original_number:
            if self.song_exists(collection_id, song.number):
                raise ValidationError(
                    f"Song {song.number} already exists in {collection_id}", field='number')
            self._song_ref(collection_id, original_number).delete()
            self.collections.add_song_to_collection(collection_id, song)
            logger.info("Song %s renumbered to %s in %s",
                        original_number, song.number, collection_id)
            song.collection_id = collection_id
            return song

        data = song.to_dict()
        if not song.audio_url:
            data['url'] = None
        self._song_ref(collection_id, song.number).update(data)
        self.collections.invalidate_cache()
        logger.info("Updated song %s in %s", song.number, collection_id)
        song.collection_id = collection_id
        return song

    def delete_song(self, collection_id: str, number: str) -> None:
        self.collections.remove_song_from_collection(collection_id, number)

import unittest
from unittest import mock

from firebase_admin import exceptions

from hymnal_admin.errors import NotFoundError, ValidationError
from hymnal_admin.models import Song, Verse
from hymnal_admin.song_repository import validate_song

from tests.support import make_services


def make_song(number='5', title='Blessed Assurance', verses=None, audio_url=None):
    if verses is None:
        verses = [Verse('1', 'Blessed assurance, Jesus is mine')]
    return Song(number=number, title=title, verses=verses, audio_url=audio_url)


class TestValidateSong(unittest.TestCase):

    def test_requires_number_and_title(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_song(make_song(number=''))
        self.assertEqual(ctx.exception.field, 'number')
        with self.assertRaises(ValidationError) as ctx:
            validate_song(make_song(title=' '))
        self.assertEqual(ctx.exception.field, 'title')

    def test_rejects_database_key_characters(self):
        for number in ('1.2', '3/4', 'a#', '[1]', '$5'):
            with self.assertRaises(ValidationError):
                validate_song(make_song(number=number))

    def test_drops_empty_verses(self):
        song = make_song(verses=[Verse('1', 'text'), Verse('2', '  '), Verse('', 'orphan')])
        validate_song(song)
        self.assertEqual([v.number for v in song.verses], ['1'])

    def test_trims_text_fields_in_place(self):
        song = make_song(number=' 12 ', title=' Title ', verses=[Verse(' 1 ', ' text ')])
        validate_song(song)
        self.assertEqual(song.number, '12')
        self.assertEqual(song.title, 'Title')
        self.assertEqual(song.verses, [Verse('1', 'text')])

    def test_needs_one_verse_with_content(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_song(make_song(verses=[Verse('1', '')]))
        self.assertEqual(ctx.exception.message, 'Please add at least one verse with content.')


class TestSongRepository(unittest.TestCase):

    def setUp(self):
        self.services, self.db, _ = make_services()
        self.songs = self.services.songs

    def _stored(self, collection_id):
        return self.db.data['song_collection'][collection_id]

    def test_list_sorted_numerically(self):
        self.songs.add_song('LPMI', make_song(number='2'))
        self.songs.add_song('LPMI', make_song(number='2a'))
        numbers = [s.number for s in self.songs.list_songs('LPMI')]
        self.assertEqual(numbers, ['1', '2', '10', '2a'])

    def test_list_handles_list_shaped_children(self):
        self.db.data['song_collection']['SRD']['songs'] = [
            None,
            {'song_number': '1', 'song_title': 'One', 'verses': []},
            {'song_number': '2', 'song_title': 'Two', 'verses': []},
        ]
        self.assertEqual([s.title for s in self.songs.list_songs('SRD')], ['One', 'Two'])

    def test_get_song(self):
        song = self.songs.get_song('LPMI', '1')
        self.assertEqual(song.title, 'Amazing Grace')
        self.assertTrue(song.has_audio)
        self.assertEqual(len(song.verses), 2)
        with self.assertRaises(NotFoundError):
            self.songs.get_song('LPMI', '999')

    def test_search(self):
        by_title = self.songs.search_songs('holy')
        self.assertEqual([s.number for s in by_title], ['10'])
        by_lyrics = self.songs.search_songs('GRACE')
        self.assertEqual(sorted((s.collection_id, s.number) for s in by_lyrics),
                         [('LPMI', '1'), ('SRD', '2')])
        by_number = self.songs.search_songs('2', collection_id='SRD')
        self.assertEqual([s.number for s in by_number], ['2'])
        self.assertEqual(self.songs.search_songs('   '), [])

    def test_find_song_collections(self):
        self.songs.add_song('SRD', make_song(number='1'))
        self.assertEqual(self.songs.find_song_collections('1'), ['LPMI', 'SRD'])

    def test_add_song(self):
        self.songs.add_song('SRD', make_song(audio_url='https://example.com/5.mp3'))
        stored = self._stored('SRD')['songs']['5']
        self.assertEqual(stored['song_title'], 'Blessed Assurance')
        self.assertEqual(stored['url'], 'https://example.com/5.mp3')
        self.assertEqual(self._stored('SRD')['metadata']['song_count'], 2)

    def test_add_song_without_audio_has_no_url(self):
        self.songs.add_song('SRD', make_song())
        self.assertNotIn('url', self._stored('SRD')['songs']['5'])

    def test_add_song_stores_trimmed_key(self):
        self.songs.add_song('SRD', make_song(number=' 12 ', title=' Padded '))
        songs = self._stored('SRD')['songs']
        self.assertIn('12', songs)
        self.assertNotIn(' 12 ', songs)
        self.assertEqual(songs['12']['song_title'], 'Padded')

    def test_add_duplicate_rejected(self):
        with self.assertRaises(ValidationError):
            self.songs.add_song('LPMI', make_song(number='1'))
        with self.assertRaises(ValidationError):
            self.songs.add_song('LPMI', make_song(number=' 1 '))

    def test_add_to_missing_collection(self):
        with self.assertRaises(NotFoundError):
            self.songs.add_song('NOPE', make_song())

    def test_update_in_place_clears_audio(self):
        song = self.songs.get_song('LPMI', '1')
        song.title = 'Amazing Grace (revised)'
        song.audio_url = None
        self.songs.update_song('LPMI', '1', song)
        stored = self._stored('LPMI')['songs']['1']
        self.assertEqual(stored['song_title'], 'Amazing Grace (revised)')
        self.assertNotIn('url', stored)

    def test_update_renumbers(self):
        song = self.songs.get_song('LPMI', '10')
        song.number = '11'
        self.songs.update_song('LPMI', '10', song)
        songs = self._stored('LPMI')['songs']
        self.assertNotIn('10', songs)
        self.assertEqual(songs['11']['song_number'], '11')
        self.assertEqual(self._stored('LPMI')['metadata']['song_count'], 2)

    def test_renumber_onto_existing_rejected(self):
        song = self.songs.get_song('LPMI', '10')
        song.number = '1'
        with self.assertRaises(ValidationError):
            self.songs.update_song('LPMI', '10', song)
        self.assertIn('10', self._stored('LPMI')['songs'])

    def test_update_moves_between_collections(self):
        song = self.songs.get_song('LPMI', '10')
        moved = self.songs.update_song('LPMI', '10', song, new_collection_id='SRD')
        self.assertEqual(moved.collection_id, 'SRD')
        self.assertNotIn('10', self._stored('LPMI')['songs'])
        self.assertIn('10', self._stored('SRD')['songs'])
        self.assertEqual(self._stored('LPMI')['metadata']['song_count'], 1)
        self.assertEqual(self._stored('SRD')['metadata']['song_count'], 2)

    def test_move_keeps_new_copy_when_old_removal_fails(self):
        song = self.songs.get_song('LPMI', '10')
        failure = exceptions.UnknownError('network down')
        with mock.patch.object(self.services.collections, 'remove_song_from_collection',
                               side_effect=failure):
            with self.assertLogs('hymnal_admin.song_repository', level='WARNING'):
                self.songs.update_song('LPMI', '10', song, new_collection_id='SRD')
        self.assertIn('10', self._stored('SRD')['songs'])
        self.assertIn('10', self._stored('LPMI')['songs'])

    def test_update_missing_song(self):
        with self.assertRaises(NotFoundError):
            self.songs.update_song('LPMI', '404', make_song(number='404'))

    def test_delete_song(self):
        self.songs.delete_song('LPMI', '10')
        self.assertNotIn('10', self._stored('LPMI')['songs'])
        with self.assertRaises(NotFoundError):
            self.songs.delete_song('LPMI', '10')


if __name__ == '__main__':
    unittest.main()

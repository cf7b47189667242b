import unittest

from hymnal_admin.models import (AccessLevel, CollectionStats, CollectionStatus, GlobalVersion,
                                 Song, SongCollection, SongReport, Verse, role_rank)


class TestAccessLevels(unittest.TestCase):

    def test_hierarchy(self):
        ranks = [level.rank for level in AccessLevel]
        self.assertEqual(ranks, sorted(ranks))
        self.assertLess(AccessLevel.PREMIUM.rank, AccessLevel.ADMIN.rank)

    def test_from_value_defaults(self):
        self.assertEqual(AccessLevel.from_value('PREMIUM'), AccessLevel.PREMIUM)
        self.assertEqual(AccessLevel.from_value(None), AccessLevel.PUBLIC)
        self.assertEqual(CollectionStatus.from_value('bogus'), CollectionStatus.ACTIVE)

    def test_role_rank(self):
        self.assertEqual(role_rank('registered'), role_rank('user'))
        self.assertEqual(role_rank('superadmin'), role_rank('super_admin'))
        self.assertEqual(role_rank(None), 0)
        self.assertEqual(role_rank('mystery'), 0)


class TestSong(unittest.TestCase):

    def test_from_dict_with_index_keyed_verses(self):
        song = Song.from_dict({
            'song_number': 7,
            'song_title': 'Verses as map',
            'verses': {'10': {'verse_number': '10', 'lyrics': 'ten'},
                       '2': {'verse_number': '2', 'lyrics': 'two'}},
        })
        self.assertEqual(song.number, '7')
        self.assertEqual([v.number for v in song.verses], ['2', '10'])
        self.assertFalse(song.has_audio)

    def test_to_dict_omits_empty_url(self):
        song = Song('1', 'Title', [Verse('1', 'text')])
        self.assertNotIn('url', song.to_dict())
        song.audio_url = 'https://example.com/a.mp3'
        self.assertEqual(song.to_dict()['url'], 'https://example.com/a.mp3')


class TestSongCollection(unittest.TestCase):

    def test_round_trip_keeps_extra_keys(self):
        metadata = {
            'name': 'Kids',
            'access_level': 'registered',
            'status': 'archived',
            'song_count': '4',
            'display_icon': 'child',
        }
        collection = SongCollection.from_dict('KIDS', metadata)
        self.assertEqual(collection.song_count, 4)
        self.assertEqual(collection.status, CollectionStatus.ARCHIVED)
        self.assertFalse(collection.is_active)
        data = collection.to_dict()
        self.assertEqual(data['display_icon'], 'child')
        self.assertEqual(data['access_level'], 'registered')
        self.assertNotIn('updated_by', data)

    def test_stats(self):
        collections = [
            SongCollection('A', 'A', song_count=3),
            SongCollection('B', 'B', access_level=AccessLevel.ADMIN,
                           status=CollectionStatus.INACTIVE, song_count=2),
        ]
        stats = CollectionStats.from_collections(collections)
        self.assertEqual(stats.total_songs, 5)
        self.assertEqual(stats.active_collections, 1)
        self.assertEqual(stats.status_counts, {'active': 1, 'inactive': 1})


class TestSongReport(unittest.TestCase):

    def test_requires_created_at(self):
        with self.assertRaises(ValueError):
            SongReport.from_dict({'songNumber': '1'})
        self.assertEqual(SongReport.from_dict({'songNumber': '1'}, strict=False).created_at, '')

    def test_camel_case_keys(self):
        report = SongReport.from_dict({'id': 'r', 'songNumber': 12, 'createdAt': 'x',
                                       'adminResponse': 'ok'})
        self.assertEqual(report.song_number, '12')
        self.assertEqual(report.status, 'pending')
        self.assertEqual(report.to_dict()['adminResponse'], 'ok')


class TestGlobalVersion(unittest.TestCase):

    def test_defaults(self):
        version = GlobalVersion.from_dict({})
        self.assertEqual(version.version, '1.0.0')
        self.assertEqual(version.type, 'optional')
        self.assertEqual(version.triggered_by, 'unknown')

    def test_emergency_only_written_when_set(self):
        self.assertNotIn('emergency', GlobalVersion('1.0.0').to_dict())
        self.assertTrue(GlobalVersion('1.0.0', emergency=True).to_dict()['emergency'])


if __name__ == '__main__':
    unittest.main()

"""Shared fixtures for the admin service tests."""

from datetime import datetime, timedelta, timezone

from hymnal_admin.authorization import Actor
from hymnal_admin.config import AdminConfig
from hymnal_admin.services import build_services

from tests.fake_db import FakeDatabase

ADMIN = Actor(uid='admin-uid', email='admin@example.com')
SUPER_ADMIN = Actor(uid='super-uid', email='super@example.com')
MEMBER = Actor(uid='member-uid', email='member@example.com')


class FixedClock:
    """Clock returning a settable UTC time."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_config(**overrides):
    values = {
        'database_url': 'https://hymnal-test.firebaseio.com',
        'super_admin_emails': ('super@example.com',),
    }
    values.update(overrides)
    return AdminConfig(**values)


def seed_data():
    """A small database with two collections, users and a report."""
    return {
        'song_collection': {
            'LPMI': {
                'metadata': {
                    'name': 'Lagu Pujian Masa Ini',
                    'description': 'Main hymnal',
                    'access_level': 'public',
                    'status': 'active',
                    'song_count': 2,
                    'created_at': '2024-01-01T00:00:00+00:00',
                    'updated_at': '2024-01-01T00:00:00+00:00',
                    'created_by': 'system',
                    'display_color': '#1976D2',
                },
                'songs': {
                    '1': {
                        'song_number': '1',
                        'song_title': 'Amazing Grace',
                        'verses': [
                            {'verse_number': '1', 'lyrics': 'Amazing grace how sweet the sound'},
                            {'verse_number': '2', 'lyrics': 'Twas grace that taught my heart to fear'},
                        ],
                        'url': 'https://example.com/1.mp3',
                    },
                    '10': {
                        'song_number': '10',
                        'song_title': 'Holy Holy Holy',
                        'verses': [{'verse_number': '1', 'lyrics': 'Lord God Almighty'}],
                    },
                },
            },
            'SRD': {
                'metadata': {
                    'name': 'Syair Rindu Dendam',
                    'description': '',
                    'access_level': 'premium',
                    'status': 'active',
                    'song_count': 1,
                    'created_at': '2024-01-02T00:00:00+00:00',
                    'updated_at': '2024-01-02T00:00:00+00:00',
                    'created_by': 'system',
                },
                'songs': {
                    '2': {
                        'song_number': '2',
                        'song_title': 'Rindu',
                        'verses': [{'verse_number': '1', 'lyrics': 'Grace abounding'}],
                    },
                },
            },
        },
        'users': {
            'admin-uid': {'email': 'admin@example.com', 'role': 'admin'},
            'member-uid': {'email': 'member@example.com', 'role': 'user'},
        },
    }


def make_services(data=None, clock=None, config=None):
    """Services on a fresh FakeDatabase; returns (services, database, clock)."""
    database = FakeDatabase(seed_data() if data is None else data)
    clock = clock or FixedClock()
    services = build_services(config or make_config(), root=database.reference(), clock=clock)
    return services, database, clock

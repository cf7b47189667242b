import unittest
from unittest import mock

from firebase_admin import auth

from hymnal_admin.authorization import (Actor, AuthorizationService, actor_from_email,
                                        actor_from_id_token)
from hymnal_admin.errors import NotFoundError, PermissionDeniedError

from tests.fake_db import FakeDatabase
from tests.support import make_config, seed_data


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


class TestAuthorizationService(unittest.TestCase):

    def setUp(self):
        self.db = FakeDatabase(seed_data())
        self.clock = FakeMonotonic()
        self.service = AuthorizationService(self.db.reference(), make_config(), clock=self.clock)

    def test_roles_from_database(self):
        self.assertEqual(self.service.get_role('admin-uid'), 'admin')
        self.assertEqual(self.service.get_role('member-uid'), 'user')
        self.assertEqual(self.service.get_role('unknown-uid'), 'user')

    def test_unknown_role_value_is_user(self):
        self.db.data['users']['member-uid']['role'] = 'owner'
        self.assertEqual(self.service.get_role('member-uid'), 'user')

    def test_super_admin_email_wins(self):
        self.assertEqual(self.service.get_role('member-uid', 'SUPER@example.com'), 'super_admin')

    def test_role_cache_expires(self):
        self.assertEqual(self.service.get_role('member-uid'), 'user')
        self.db.data['users']['member-uid']['role'] = 'admin'
        self.assertEqual(self.service.get_role('member-uid'), 'user')

        self.clock.value += 61
        self.assertEqual(self.service.get_role('member-uid'), 'admin')

    def test_clear_cache(self):
        self.service.get_role('member-uid')
        self.db.data['users']['member-uid']['role'] = 'premium'
        self.service.clear_cache()
        self.assertEqual(self.service.get_role('member-uid'), 'premium')

    def test_require_admin(self):
        self.assertEqual(self.service.require_admin(Actor('admin-uid', 'admin@example.com')),
                         'admin')
        with self.assertRaises(PermissionDeniedError):
            self.service.require_admin(Actor('member-uid', 'member@example.com'))
        with self.assertRaises(PermissionDeniedError):
            self.service.require_admin(None)

    def test_require_super_admin(self):
        with self.assertRaises(PermissionDeniedError):
            self.service.require_super_admin(Actor('admin-uid', 'admin@example.com'))
        self.assertEqual(
            self.service.require_super_admin(Actor('super-uid', 'super@example.com')),
            'super_admin')


class TestActorResolution(unittest.TestCase):

    @mock.patch('hymnal_admin.authorization.auth.get_user_by_email')
    def test_actor_from_email(self, get_user):
        get_user.return_value = mock.Mock(uid='abc', email='admin@example.com')
        actor = actor_from_email('admin@example.com')
        self.assertEqual(actor, Actor('abc', 'admin@example.com'))
        self.assertEqual(actor.label, 'admin@example.com')

    @mock.patch('hymnal_admin.authorization.auth.get_user_by_email')
    def test_actor_from_unknown_email(self, get_user):
        get_user.side_effect = auth.UserNotFoundError('No user record found')
        with self.assertRaises(NotFoundError):
            actor_from_email('ghost@example.com')

    @mock.patch('hymnal_admin.authorization.auth.verify_id_token')
    def test_actor_from_id_token(self, verify):
        verify.return_value = {'uid': 'abc'}
        actor = actor_from_id_token('token')
        verify.assert_called_once_with('token')
        self.assertEqual(actor.uid, 'abc')
        self.assertIsNone(actor.email)
        self.assertEqual(actor.label, 'abc')


if __name__ == '__main__':
    unittest.main()

"""Command-line admin tool for the hymnal database.

Examples:
    hymnal-admin --as admin@example.com collections list --all
    hymnal-admin --as admin@example.com songs add --collection LPMI \\
        --number 12 --title "Amazing Grace" --verse "1: Amazing grace..."
    hymnal-admin --as admin@example.com reports resolve report_1700_1 \\
        --response "Fixed the typo"
    hymnal-admin --as admin@example.com global trigger --version 1.0.4 \\
        --type recommended --clear-cache
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from firebase_admin.exceptions import FirebaseError

from hymnal_admin.authorization import Actor, actor_from_email
from hymnal_admin.config import configure_logging, load_config
from hymnal_admin.errors import HymnalAdminError, ValidationError
from hymnal_admin.global_update import PRESETS
from hymnal_admin.models import (UPDATE_TYPES, AccessLevel, CollectionStatus, ReportStatus,
                                 Song, Verse)
from hymnal_admin.services import AdminServices, build_services

logger = logging.getLogger(__name__)

ACCESS_LEVELS = [level.value for level in AccessLevel]
COLLECTION_STATUSES = [status.value for status in CollectionStatus]
REPORT_STATUSES = [status.value for status in ReportStatus]

TEMPORARY_PREMIUM_DAYS = 1
EXTENDED_PREMIUM_DAYS = 365


# ----------------------------------------------------------------------
# Input helpers
# ----------------------------------------------------------------------

def parse_verses(values: Optional[List[str]]) -> List[Verse]:
    """Turn repeated --verse "1: lyrics" options into verses.

    A value without a "number:" prefix takes the next position.
    """
    verses = []
    for index, value in enumerate(values or [], start=1):
        number, sep, lyrics = value.partition(':')
        if sep and number.strip() and ' ' not in number.strip():
            verses.append(Verse(number=number.strip(), lyrics=lyrics.strip()))
        else:
            verses.append(Verse(number=str(index), lyrics=value.strip()))
    return verses


def load_song_file(path: str) -> Song:
    """Read a song stored in the same JSON shape as the database node."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Could not read song file {path}: {e}", field='from_json')
    if not isinstance(data, dict):
        raise ValidationError(f"Song file {path} must contain a JSON object", field='from_json')
    return Song.from_dict(data)


def song_from_args(args) -> Song:
    if args.from_json:
        song = load_song_file(args.from_json)
    else:
        song = Song(number='', title='')
    if args.number:
        song.number = args.number
    if args.title:
        song.title = args.title
    if args.verse:
        song.verses = parse_verses(args.verse)
    if args.audio_url is not None:
        song.audio_url = args.audio_url or None
    return song


def confirm(message: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    answer = input(f"⚠️  {message} [y/N]: ")
    return answer.strip().lower() in ('y', 'yes')


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------

def print_song(song: Song) -> None:
    print(f"\n🎵 {song.number}. {song.title}")
    if song.collection_id:
        print(f"   Collection: {song.collection_id}")
    if song.has_audio:
        print(f"   Audio: {song.audio_url}")
    for verse in song.verses:
        print(f"\n   [{verse.number}]")
        for line in verse.lyrics.splitlines():
            print(f"   {line}")


def print_collection(c) -> None:
    print(f"\n📚 {c.name} ({c.id})")
    print(f"   Access: {c.access_level.value}")
    print(f"   Status: {c.status.value}")
    print(f"   Songs: {c.song_count}")
    if c.description:
        print(f"   Description: {c.description}")
    print(f"   Updated: {c.updated_at or c.created_at}")


def print_report(r) -> None:
    status_emoji = {'pending': '🟡', 'resolved': '✅', 'dismissed': '⚪'}.get(r.status, '❓')
    print(f"\n{status_emoji} {r.id}")
    print(f"   Song: {r.song_number} - {r.song_title}")
    print(f"   Issue: {r.issue_type}")
    print(f"   Reporter: {r.reporter_name} <{r.reporter_email}>")
    print(f"   Created: {r.created_at}")
    if r.specific_verse:
        print(f"   Verse: {r.specific_verse}")
    print(f"   Description: {r.description}")
    if r.admin_response:
        print(f"   Admin response: {r.admin_response}")


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def run_songs(args, services: AdminServices, actor: Actor) -> int:
    services.auth.require_admin(actor)
    songs = services.songs

    if args.action == 'list':
        found = songs.list_songs(args.collection)
        print(f"\n📋 {len(found)} song(s) in {args.collection}:")
        for song in found:
            audio = ' 🔊' if song.has_audio else ''
            print(f"   {song.number:>5}  {song.title}{audio}")
    elif args.action == 'show':
        print_song(songs.get_song(args.collection, args.number))
    elif args.action == 'search':
        found = songs.search_songs(args.query, args.collection)
        print(f"\n🔍 {len(found)} match(es) for '{args.query}':")
        for song in found:
            print(f"   [{song.collection_id}] {song.number}. {song.title}")
    elif args.action == 'add':
        song = songs.add_song(args.collection, song_from_args(args))
        print(f"✅ Added song {song.number} to {args.collection}")
    elif args.action == 'update':
        song = songs.get_song(args.collection, args.number)
        if args.from_json:
            song = load_song_file(args.from_json)
        if args.new_number:
            song.number = args.new_number
        if args.title:
            song.title = args.title
        if args.verse:
            song.verses = parse_verses(args.verse)
        if args.audio_url is not None:
            song.audio_url = args.audio_url or None
        song = songs.update_song(args.collection, args.number, song,
                                 new_collection_id=args.move_to)
        print(f"✅ Updated song {song.number} in {song.collection_id}")
    elif args.action == 'delete':
        if not confirm(f"Delete song {args.number} from {args.collection}?", args.yes):
            print("Cancelled")
            return 1
        songs.delete_song(args.collection, args.number)
        print(f"✅ Deleted song {args.number} from {args.collection}")
    return 0


def run_collections(args, services: AdminServices, actor: Actor) -> int:
    services.auth.require_admin(actor)
    collections = services.collections

    if args.action == 'list':
        found = collections.list_collections(include_inactive=args.all, user_role=args.role)
        print(f"\n📋 Found {len(found)} collection(s):")
        for c in found:
            print_collection(c)
    elif args.action == 'show':
        print_collection(collections.get_collection(args.collection_id))
    elif args.action == 'create':
        collection_id = collections.create_collection(
            name=args.name,
            description=args.description,
            actor=actor,
            collection_id=args.id,
            access_level=args.access,
        )
        print(f"✅ Created collection {collection_id}")
    elif args.action == 'update':
        c = collections.update_collection(
            args.collection_id, actor,
            name=args.name,
            description=args.description,
            access_level=args.access,
            status=args.status,
        )
        print(f"✅ Updated collection {c.id}")
        print_collection(c)
    elif args.action == 'delete':
        if not confirm(f"Delete collection {args.collection_id} and all of its songs?", args.yes):
            print("Cancelled")
            return 1
        collections.delete_collection(args.collection_id)
        print(f"✅ Deleted collection {args.collection_id}")
    elif args.action == 'add-song':
        song = services.songs.add_song(args.collection_id, load_song_file(args.from_json))
        print(f"✅ Added song {song.number} to {args.collection_id}")
    elif args.action == 'remove-song':
        collections.remove_song_from_collection(args.collection_id, args.number)
        print(f"✅ Removed song {args.number} from {args.collection_id}")
    elif args.action == 'stats':
        stats = collections.get_stats()
        print("\n📊 Collection statistics")
        print(f"   Collections: {stats.total_collections}")
        print(f"   Active: {stats.active_collections}")
        print(f"   Public: {stats.public_collections}")
        print(f"   Songs: {stats.total_songs}")
        for level, count in sorted(stats.access_level_counts.items()):
            print(f"   Access {level}: {count}")
        for status, count in sorted(stats.status_counts.items()):
            print(f"   Status {status}: {count}")
    elif args.action == 'recount':
        counts = collections.recount_all()
        for collection_id, count in sorted(counts.items()):
            print(f"   {collection_id}: {count}")
        print(f"✅ Recounted {len(counts)} collection(s)")
    elif args.action == 'bulk-access':
        collections.bulk_update_access(args.ids, args.access)
        print(f"✅ Set access level '{args.access}' on {len(args.ids)} collection(s)")
    return 0


def run_reports(args, services: AdminServices, actor: Actor) -> int:
    services.auth.require_admin(actor)
    reports = services.reports

    if args.action == 'list':
        if args.song:
            found = reports.get_reports_for_song(args.song)
        elif args.status:
            found = reports.get_reports_by_status(args.status)
        else:
            found = reports.get_all_reports()
        if args.song and args.status:
            found = [r for r in found if r.status == args.status]
        print(f"\n📋 Found {len(found)} report(s):")
        for r in found:
            print_report(r)
    elif args.action == 'stats':
        stats = reports.get_statistics()
        print("\n📊 Report statistics")
        for key in ('total', 'pending', 'resolved', 'dismissed'):
            print(f"   {key.capitalize()}: {stats[key]}")
    elif args.action in ('resolve', 'dismiss', 'reopen'):
        status = {
            'resolve': ReportStatus.RESOLVED,
            'dismiss': ReportStatus.DISMISSED,
            'reopen': ReportStatus.PENDING,
        }[args.action].value
        report = reports.update_report_status(args.report_id, status,
                                              getattr(args, 'response', None))
        print(f"✅ Report {report.id} is now {report.status}")
    elif args.action == 'delete':
        if not confirm(f"Delete report {args.report_id}?", args.yes):
            print("Cancelled")
            return 1
        reports.delete_report(args.report_id)
        print(f"✅ Deleted report {args.report_id}")
    return 0


def run_sessions(args, services: AdminServices, actor: Actor) -> int:
    services.auth.require_admin(actor)
    sessions = services.sessions

    if args.action == 'users':
        users = sessions.list_users()
        print(f"\n👥 {len(users)} user(s):")
        for user in users:
            premium = ' ⭐' if user.get('isPremium') else ''
            print(f"   {user.get('email', '-')}  [{user.get('role', 'user')}]{premium}  {user['uid']}")
    elif args.action == 'show':
        user = sessions.get_user(args.uid)
        info = sessions.get_device_session_info(args.uid)
        limits = info['limits']
        print(f"\n👤 {user.get('email', args.uid)}")
        print(f"   Role: {user.get('role', 'user')}")
        print(f"   Premium: {'Yes' if user.get('isPremium') else 'No'}")
        print(f"   Sessions: {info['totalSessions']}")
        print(f"   Phones: {info['phoneCount']}/{limits['maxPhones']}")
        print(f"   Tablets: {info['tabletCount']}/{limits['maxTablets']}")
        print(f"   Web: {info['webCount']}/{limits['maxWeb']}")
        for session in info['sessions']:
            print(f"   - {session['sessionId']} ({session.get('deviceType', 'unknown')}) "
                  f"expires {session.get('sessionExpiresAt', '-')}")
    elif args.action == 'remove':
        sessions.remove_session(args.uid, args.device)
        print(f"✅ Removed session {args.device}")
    elif args.action == 'remove-all':
        if not confirm(f"Sign user {args.uid} out of every device?", args.yes):
            print("Cancelled")
            return 1
        sessions.remove_all_sessions(args.uid)
        print(f"✅ Removed all sessions for {args.uid}")
    elif args.action == 'grant-premium':
        days = args.days
        if args.temporary:
            days = TEMPORARY_PREMIUM_DAYS
        elif args.extended:
            days = EXTENDED_PREMIUM_DAYS
        user = sessions.set_premium(args.uid, True, actor, duration_days=days)
        print(f"✅ Premium granted to {user.get('email', args.uid)}")
        if user.get('premiumExpiryDate'):
            print(f"   Expires: {user['premiumExpiryDate']}")
    elif args.action == 'revoke-premium':
        user = sessions.set_premium(args.uid, False, actor)
        print(f"✅ Premium revoked for {user.get('email', args.uid)}")
    elif args.action == 'trials':
        requests = sessions.list_trial_requests()
        print(f"\n📋 {len(requests)} trial request(s):")
        for request in requests:
            print(f"   {request['id']}  {request.get('userEmail', '-')}  "
                  f"[{request.get('status', 'pending')}]")
    elif args.action == 'approve-trial':
        sessions.approve_trial_request(args.request_id, actor)
        print(f"✅ Trial request {args.request_id} approved")
    elif args.action == 'reject-trial':
        sessions.reject_trial_request(args.request_id, actor)
        print(f"✅ Trial request {args.request_id} rejected")
    return 0


def run_global(args, services: AdminServices, actor: Actor) -> int:
    updates = services.global_update

    if args.action in ('status', 'log', 'check'):
        services.auth.require_admin(actor)
    else:
        services.auth.require_super_admin(actor)

    if args.action == 'status':
        current = updates.get_global_version()
        if current is None:
            print("ℹ️  No global version has been broadcast yet")
        else:
            print(f"\n🌐 Global version {current.version} ({current.type})")
            print(f"   Message: {current.message}")
            print(f"   Force update: {current.force_update}")
            print(f"   Clear cache: {current.clear_cache}")
            print(f"   Update collections: {current.update_collections}")
            print(f"   Triggered: {current.triggered_at} by {current.triggered_by}")
        stats = updates.get_update_stats()
        print(f"   Total updates: {stats.get('total_updates', 0)}")
    elif args.action == 'trigger':
        if not confirm(f"Broadcast version {args.version} to every client?", args.yes):
            print("Cancelled")
            return 1
        record = updates.trigger_global_update(
            actor,
            version=args.version,
            message=args.message,
            update_type=args.type,
            force_update=args.force,
            clear_cache=args.clear_cache,
            update_collections=args.update_collections,
            notify_user=args.notify,
        )
        print(f"✅ Global update {record.version} triggered")
    elif args.action == 'preset':
        record = updates.trigger_preset(actor, args.preset, version=args.version)
        print(f"✅ Preset '{args.preset}' triggered as version {record.version}")
    elif args.action == 'emergency-flush':
        if not confirm("Force every client to clear its cache and restart?", args.yes):
            print("Cancelled")
            return 1
        record = updates.emergency_cache_flush(actor)
        print(f"🚨 Emergency cache flush broadcast as version {record.version}")
    elif args.action == 'clear-force':
        updates.clear_force_update()
        print("✅ Force update flag cleared")
    elif args.action == 'log':
        entries = updates.get_recent_updates(args.limit)
        print(f"\n📜 Last {len(entries)} update(s):")
        for entry in entries:
            print(f"   {entry.get('timestamp', '-')}  {entry.get('version', '-')}  "
                  f"{entry.get('type', '-')}  {entry.get('action', '-')}  "
                  f"{entry.get('triggered_by', '-')}")
    elif args.action == 'check':
        result = updates.check_for_updates(args.local_version)
        if result.has_update:
            print(f"⬆️  Update available: {result.current_version} -> {result.latest_version}")
            print(f"   Type: {result.update_type}")
            print(f"   Force update: {result.force_update}")
            print(f"   Clear cache: {result.clear_cache}")
        else:
            print(f"✅ {result.current_version} is up to date ({result.message})")
    return 0


COMMANDS = {
    'songs': run_songs,
    'collections': run_collections,
    'reports': run_reports,
    'sessions': run_sessions,
    'global': run_global,
}


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------

def _add_song_options(parser, number_required: bool = True):
    parser.add_argument('--collection', required=True, help='Collection ID (e.g. LPMI)')
    parser.add_argument('--number', required=number_required, help='Song number')
    parser.add_argument('--title', help='Song title')
    parser.add_argument('--verse', action='append',
                        help='Verse as "number: lyrics"; repeat for each verse')
    parser.add_argument('--audio-url', help='Audio URL (empty string removes it)')
    parser.add_argument('--from-json', help='Read the song from a JSON file')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='hymnal-admin',
                                     description='Manage the hymnal Firebase database')
    parser.add_argument('--config', help='Path to firebase_config.json')
    parser.add_argument('--as', dest='actor_email', metavar='EMAIL',
                        help='Email of the acting admin (default: $HYMNAL_ADMIN_EMAIL)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    groups = parser.add_subparsers(dest='command', help='Area to manage')

    # Songs
    songs = groups.add_parser('songs', help='Add, edit and delete songs')
    song_actions = songs.add_subparsers(dest='action', required=True)
    p = song_actions.add_parser('list', help='List songs in a collection')
    p.add_argument('--collection', required=True)
    p = song_actions.add_parser('show', help='Show a song with its verses')
    p.add_argument('--collection', required=True)
    p.add_argument('--number', required=True)
    p = song_actions.add_parser('search', help='Search by number, title or lyrics')
    p.add_argument('query')
    p.add_argument('--collection', help='Limit to one collection')
    p = song_actions.add_parser('add', help='Add a song')
    _add_song_options(p, number_required=False)
    p = song_actions.add_parser('update', help='Edit a song')
    _add_song_options(p)
    p.add_argument('--new-number', help='Renumber the song')
    p.add_argument('--move-to', help='Move the song to another collection')
    p = song_actions.add_parser('delete', help='Delete a song')
    p.add_argument('--collection', required=True)
    p.add_argument('--number', required=True)
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    # Collections
    collections = groups.add_parser('collections', help='Manage song collections')
    coll_actions = collections.add_subparsers(dest='action', required=True)
    p = coll_actions.add_parser('list', help='List collections')
    p.add_argument('--all', action='store_true', help='Include inactive collections')
    p.add_argument('--role', help='Only collections visible to this role')
    p = coll_actions.add_parser('show', help='Show one collection')
    p.add_argument('collection_id')
    p = coll_actions.add_parser('create', help='Create a collection')
    p.add_argument('--name', required=True)
    p.add_argument('--description', default='')
    p.add_argument('--id', help='Collection ID (default: derived from the name)')
    p.add_argument('--access', default=AccessLevel.ADMIN.value, choices=ACCESS_LEVELS)
    p = coll_actions.add_parser('update', help='Edit collection metadata')
    p.add_argument('collection_id')
    p.add_argument('--name')
    p.add_argument('--description')
    p.add_argument('--access', choices=ACCESS_LEVELS)
    p.add_argument('--status', choices=COLLECTION_STATUSES)
    p = coll_actions.add_parser('delete', help='Delete a collection and its songs')
    p.add_argument('collection_id')
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p = coll_actions.add_parser('add-song', help='Add a song from a JSON file')
    p.add_argument('collection_id')
    p.add_argument('--from-json', required=True)
    p = coll_actions.add_parser('remove-song', help='Remove a song from a collection')
    p.add_argument('collection_id')
    p.add_argument('--number', required=True)
    coll_actions.add_parser('stats', help='Collection statistics')
    coll_actions.add_parser('recount', help='Recount songs in every collection')
    p = coll_actions.add_parser('bulk-access', help='Set access level on several collections')
    p.add_argument('--ids', nargs='+', required=True)
    p.add_argument('--access', required=True, choices=ACCESS_LEVELS)

    # Reports
    reports = groups.add_parser('reports', help='Moderate song reports')
    report_actions = reports.add_subparsers(dest='action', required=True)
    p = report_actions.add_parser('list', help='List reports, newest first')
    p.add_argument('--status', choices=REPORT_STATUSES)
    p.add_argument('--song', help='Only reports for this song number')
    report_actions.add_parser('stats', help='Report counts by status')
    for action, help_text in (('resolve', 'Mark a report resolved'),
                              ('dismiss', 'Dismiss a report')):
        p = report_actions.add_parser(action, help=help_text)
        p.add_argument('report_id')
        p.add_argument('--response', help='Admin response shown to the reporter')
    p = report_actions.add_parser('reopen', help='Set a report back to pending')
    p.add_argument('report_id')
    p = report_actions.add_parser('delete', help='Delete a report')
    p.add_argument('report_id')
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    # Sessions
    sessions = groups.add_parser('sessions', help='Users, sessions and premium access')
    session_actions = sessions.add_subparsers(dest='action', required=True)
    session_actions.add_parser('users', help='List users')
    p = session_actions.add_parser('show', help='Show a user and their active sessions')
    p.add_argument('uid')
    p = session_actions.add_parser('remove', help='Remove one device session')
    p.add_argument('uid')
    p.add_argument('--device', required=True, help='Device/session ID')
    p = session_actions.add_parser('remove-all', help='Remove every session of a user')
    p.add_argument('uid')
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p = session_actions.add_parser('grant-premium', help='Grant premium access')
    p.add_argument('uid')
    duration = p.add_mutually_exclusive_group()
    duration.add_argument('--days', type=float, help='Grant for this many days')
    duration.add_argument('--temporary', action='store_true', help='Grant for 24 hours')
    duration.add_argument('--extended', action='store_true', help='Grant for 365 days')
    p = session_actions.add_parser('revoke-premium', help='Revoke premium access')
    p.add_argument('uid')
    session_actions.add_parser('trials', help='List trial requests')
    p = session_actions.add_parser('approve-trial', help='Approve a trial request')
    p.add_argument('request_id')
    p = session_actions.add_parser('reject-trial', help='Reject a trial request')
    p.add_argument('request_id')

    # Global update
    global_update = groups.add_parser('global', help='Broadcast global updates')
    global_actions = global_update.add_subparsers(dest='action', required=True)
    global_actions.add_parser('status', help='Show the broadcast version')
    p = global_actions.add_parser('trigger', help='Broadcast a new version')
    p.add_argument('--version', required=True)
    p.add_argument('--message', default='')
    p.add_argument('--type', default='optional', choices=list(UPDATE_TYPES))
    p.add_argument('--force', action='store_true', help='Require clients to update')
    p.add_argument('--clear-cache', action='store_true')
    p.add_argument('--update-collections', action='store_true')
    p.add_argument('--notify', action='store_true', help='Show the message to users')
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p = global_actions.add_parser('preset', help='Broadcast a predefined update')
    p.add_argument('preset', choices=sorted(PRESETS))
    p.add_argument('--version', help='Version (default: next patch version)')
    p = global_actions.add_parser('emergency-flush', help='Force every client to clear its cache')
    p.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    global_actions.add_parser('clear-force', help='Clear the force update flag')
    p = global_actions.add_parser('log', help='Recent update log entries')
    p.add_argument('--limit', type=int, default=10)
    p = global_actions.add_parser('check', help='What a client at this version would see')
    p.add_argument('local_version')

    return parser


def resolve_actor(email: Optional[str]) -> Actor:
    email = email or os.getenv('HYMNAL_ADMIN_EMAIL')
    if not email:
        raise ValidationError('Specify the acting admin with --as EMAIL '
                              'or the HYMNAL_ADMIN_EMAIL environment variable')
    return actor_from_email(email)


def main(argv: Optional[List[str]] = None, services: Optional[AdminServices] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = services.config if services else load_config(
            Path(args.config) if args.config else None)
        configure_logging('DEBUG' if args.verbose else config.log_level)

        if services is None:
            services = build_services(config)
        actor = resolve_actor(args.actor_email)
        return COMMANDS[args.command](args, services, actor)
    except (HymnalAdminError, FirebaseError) as e:
        print(f"❌ Error: {e}")
        logger.debug("Command failed", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())

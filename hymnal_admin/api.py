"""JSON API for the web admin console.

Every endpoint except /api/health expects ``Authorization: Bearer <ID token>``
with a Firebase ID token of an admin user. Responses are
``{"success": true, ...}`` or ``{"success": false, "error": "..."}``.
"""

import logging
from dataclasses import asdict
from functools import wraps

from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from hymnal_admin import __version__
from hymnal_admin.authorization import AuthorizationService, actor_from_id_token
from hymnal_admin.errors import (HymnalAdminError, NotFoundError, PermissionDeniedError,
                                 ValidationError)
from hymnal_admin.models import Song, SongCollection
from hymnal_admin.services import build_services

logger = logging.getLogger(__name__)


def _collection_json(c: SongCollection) -> dict:
    data = c.to_dict()
    data['id'] = c.id
    return data


def _song_json(song: Song) -> dict:
    data = song.to_dict()
    data['collection_id'] = song.collection_id
    return data


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _flag(name: str) -> bool:
    return request.args.get(name, '').lower() in ('1', 'true', 'yes')


def create_app(config=None, root=None, auth_service: AuthorizationService = None) -> Flask:
    """Build the Flask app.

    Args:
        config: AdminConfig; loaded from the environment when omitted.
        root: Database root reference; Firebase is initialized when omitted.
        auth_service: Replaces the default AuthorizationService.
    """
    services = build_services(config, root)
    if auth_service is not None:
        services.auth = auth_service

    app = Flask(__name__)
    app.config['ADMIN_SERVICES'] = services

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _authenticate():
        header = request.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return None
        token = header[len('Bearer '):].strip()
        try:
            return actor_from_id_token(token)
        except (ValueError, auth.InvalidIdTokenError) as e:
            logger.info("Rejected ID token: %s", e)
            return None

    def requires_role(super_admin=False):
        def decorator(view):
            @wraps(view)
            def wrapper(*args, **kwargs):
                actor = _authenticate()
                if actor is None:
                    return jsonify({'success': False, 'error': 'Authentication required'}), 401
                if super_admin:
                    services.auth.require_super_admin(actor)
                else:
                    services.auth.require_admin(actor)
                g.actor = actor
                return view(*args, **kwargs)
            return wrapper
        return decorator

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({'success': False, 'error': e.message, 'details': e.details}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({'success': False, 'error': e.message}), 404

    @app.errorhandler(PermissionDeniedError)
    def handle_permission(e):
        return jsonify({'success': False, 'error': e.message}), 403

    @app.errorhandler(HymnalAdminError)
    def handle_admin_error(e):
        logger.error("Admin error: %s", e.message)
        return jsonify({'success': False, 'error': e.message}), 500

    @app.errorhandler(FirebaseError)
    def handle_firebase(e):
        logger.error("Firebase error: %s", e)
        return jsonify({'success': False, 'error': str(e)}), 502

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'error': e.description}), e.code
        logger.exception("Unhandled error")
        return jsonify({'success': False, 'error': str(e)}), 500

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({
            'success': True,
            'status': 'healthy',
            'version': __version__,
            'collections_cache': services.collections.cache_status(),
        })

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @app.route('/api/collections', methods=['GET'])
    @requires_role()
    def list_collections():
        collections = services.collections.list_collections(
            include_inactive=_flag('include_inactive'),
            user_role=request.args.get('role'),
        )
        return jsonify({'success': True,
                        'collections': [_collection_json(c) for c in collections]})

    @app.route('/api/collections', methods=['POST'])
    @requires_role()
    def create_collection():
        data = _body()
        collection_id = services.collections.create_collection(
            name=data.get('name', ''),
            description=data.get('description', ''),
            actor=g.actor,
            collection_id=data.get('id'),
            access_level=data.get('access_level', 'admin'),
        )
        collection = services.collections.get_collection(collection_id)
        return jsonify({'success': True, 'collection': _collection_json(collection)}), 201

    @app.route('/api/collections/stats', methods=['GET'])
    @requires_role()
    def collection_stats():
        stats = services.collections.get_stats()
        return jsonify({'success': True, 'stats': asdict(stats)})

    @app.route('/api/collections/recount', methods=['POST'])
    @requires_role()
    def recount_collections():
        return jsonify({'success': True, 'counts': services.collections.recount_all()})

    @app.route('/api/collections/bulk-access', methods=['POST'])
    @requires_role()
    def bulk_access():
        data = _body()
        ids = data.get('ids') or []
        services.collections.bulk_update_access(ids, data.get('access_level', ''))
        return jsonify({'success': True, 'updated': len(ids)})

    @app.route('/api/collections/<collection_id>', methods=['GET'])
    @requires_role()
    def get_collection(collection_id):
        collection = services.collections.get_collection(collection_id)
        return jsonify({'success': True, 'collection': _collection_json(collection)})

    @app.route('/api/collections/<collection_id>', methods=['PATCH'])
    @requires_role()
    def update_collection(collection_id):
        data = _body()
        collection = services.collections.update_collection(
            collection_id, g.actor,
            name=data.get('name'),
            description=data.get('description'),
            access_level=data.get('access_level'),
            status=data.get('status'),
        )
        return jsonify({'success': True, 'collection': _collection_json(collection)})

    @app.route('/api/collections/<collection_id>', methods=['DELETE'])
    @requires_role()
    def delete_collection(collection_id):
        services.collections.delete_collection(collection_id)
        return jsonify({'success': True})

    # ------------------------------------------------------------------
    # Songs
    # ------------------------------------------------------------------

    @app.route('/api/collections/<collection_id>/songs', methods=['GET'])
    @requires_role()
    def list_songs(collection_id):
        songs = services.songs.list_songs(collection_id)
        return jsonify({'success': True, 'songs': [_song_json(s) for s in songs]})

    @app.route('/api/collections/<collection_id>/songs', methods=['POST'])
    @requires_role()
    def add_song(collection_id):
        song = services.songs.add_song(collection_id, Song.from_dict(_body()))
        return jsonify({'success': True, 'song': _song_json(song)}), 201

    @app.route('/api/collections/<collection_id>/songs/<number>', methods=['GET'])
    @requires_role()
    def get_song(collection_id, number):
        song = services.songs.get_song(collection_id, number)
        return jsonify({'success': True, 'song': _song_json(song)})

    @app.route('/api/collections/<collection_id>/songs/<number>', methods=['PUT'])
    @requires_role()
    def update_song(collection_id, number):
        data = _body()
        song = services.songs.update_song(
            collection_id, number, Song.from_dict(data),
            new_collection_id=data.get('new_collection_id'),
        )
        return jsonify({'success': True, 'song': _song_json(song)})

    @app.route('/api/collections/<collection_id>/songs/<number>', methods=['DELETE'])
    @requires_role()
    def delete_song(collection_id, number):
        services.songs.delete_song(collection_id, number)
        return jsonify({'success': True})

    @app.route('/api/songs/search', methods=['GET'])
    @requires_role()
    def search_songs():
        songs = services.songs.search_songs(request.args.get('q', ''),
                                            request.args.get('collection'))
        return jsonify({'success': True, 'songs': [_song_json(s) for s in songs]})

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @app.route('/api/reports', methods=['GET'])
    @requires_role()
    def list_reports():
        status = request.args.get('status')
        song = request.args.get('song')
        if song:
            reports = services.reports.get_reports_for_song(song)
        else:
            reports = services.reports.get_all_reports()
        if status:
            reports = [r for r in reports if r.status == status]
        return jsonify({'success': True, 'reports': [r.to_dict() for r in reports]})

    @app.route('/api/reports/stats', methods=['GET'])
    @requires_role()
    def report_stats():
        return jsonify({'success': True, 'stats': services.reports.get_statistics()})

    @app.route('/api/reports/<report_id>', methods=['PATCH'])
    @requires_role()
    def update_report(report_id):
        data = _body()
        report = services.reports.update_report_status(
            report_id, data.get('status', ''), data.get('admin_response'))
        return jsonify({'success': True, 'report': report.to_dict()})

    @app.route('/api/reports/<report_id>', methods=['DELETE'])
    @requires_role()
    def delete_report(report_id):
        services.reports.delete_report(report_id)
        return jsonify({'success': True})

    # ------------------------------------------------------------------
    # Users, sessions, premium
    # ------------------------------------------------------------------

    @app.route('/api/users', methods=['GET'])
    @requires_role()
    def list_users():
        return jsonify({'success': True, 'users': services.sessions.list_users()})

    @app.route('/api/users/<uid>', methods=['GET'])
    @requires_role()
    def get_user(uid):
        user = services.sessions.get_user(uid)
        user.pop('sessions', None)
        return jsonify({'success': True, 'user': user,
                        'sessionInfo': services.sessions.get_device_session_info(uid)})

    @app.route('/api/users/<uid>/sessions', methods=['DELETE'])
    @requires_role()
    def remove_all_sessions(uid):
        services.sessions.remove_all_sessions(uid)
        return jsonify({'success': True})

    @app.route('/api/users/<uid>/sessions/<device_id>', methods=['DELETE'])
    @requires_role()
    def remove_session(uid, device_id):
        services.sessions.remove_session(uid, device_id)
        return jsonify({'success': True})

    @app.route('/api/users/<uid>/premium', methods=['POST'])
    @requires_role()
    def set_premium(uid):
        data = _body()
        is_premium = data.get('is_premium')
        if not isinstance(is_premium, bool):
            raise ValidationError('is_premium must be true or false', field='is_premium')
        duration_days = data.get('duration_days')
        if duration_days is not None and (isinstance(duration_days, bool)
                                          or not isinstance(duration_days, (int, float))):
            raise ValidationError('duration_days must be a number', field='duration_days')
        user = services.sessions.set_premium(uid, is_premium, g.actor,
                                             duration_days=duration_days)
        user.pop('sessions', None)
        return jsonify({'success': True, 'user': user})

    @app.route('/api/trial-requests', methods=['GET'])
    @requires_role()
    def list_trial_requests():
        return jsonify({'success': True, 'requests': services.sessions.list_trial_requests()})

    @app.route('/api/trial-requests/<request_id>/approve', methods=['POST'])
    @requires_role()
    def approve_trial(request_id):
        result = services.sessions.approve_trial_request(request_id, g.actor)
        return jsonify({'success': True, 'request': result})

    @app.route('/api/trial-requests/<request_id>/reject', methods=['POST'])
    @requires_role()
    def reject_trial(request_id):
        result = services.sessions.reject_trial_request(request_id, g.actor)
        return jsonify({'success': True, 'request': result})

    # ------------------------------------------------------------------
    # Global update
    # ------------------------------------------------------------------

    @app.route('/api/global-update', methods=['GET'])
    @requires_role()
    def global_status():
        current = services.global_update.get_global_version()
        return jsonify({
            'success': True,
            'version': current.to_dict() if current else None,
            'stats': services.global_update.get_update_stats(),
        })

    @app.route('/api/global-update', methods=['POST'])
    @requires_role(super_admin=True)
    def trigger_global_update():
        data = _body()
        record = services.global_update.trigger_global_update(
            g.actor,
            version=data.get('version', ''),
            message=data.get('message', ''),
            update_type=data.get('type', 'optional'),
            force_update=bool(data.get('force_update')),
            clear_cache=bool(data.get('clear_cache')),
            update_collections=bool(data.get('update_collections')),
            notify_user=bool(data.get('notify_user')),
        )
        return jsonify({'success': True, 'version': record.to_dict()})

    @app.route('/api/global-update/preset/<preset>', methods=['POST'])
    @requires_role(super_admin=True)
    def trigger_preset(preset):
        record = services.global_update.trigger_preset(g.actor, preset,
                                                       version=_body().get('version'))
        return jsonify({'success': True, 'version': record.to_dict()})

    @app.route('/api/global-update/emergency', methods=['POST'])
    @requires_role(super_admin=True)
    def emergency_flush():
        record = services.global_update.emergency_cache_flush(g.actor)
        return jsonify({'success': True, 'version': record.to_dict()})

    @app.route('/api/global-update/force', methods=['DELETE'])
    @requires_role(super_admin=True)
    def clear_force_update():
        services.global_update.clear_force_update()
        return jsonify({'success': True})

    @app.route('/api/global-update/log', methods=['GET'])
    @requires_role()
    def update_log():
        limit = request.args.get('limit', 10, type=int)
        return jsonify({'success': True,
                        'updates': services.global_update.get_recent_updates(limit)})

    @app.route('/api/global-update/check', methods=['GET'])
    @requires_role()
    def check_for_updates():
        version = request.args.get('version', '')
        if not version:
            raise ValidationError('version is required', field='version')
        result = services.global_update.check_for_updates(version)
        return jsonify({'success': True, 'result': result.to_dict()})

    return app


if __name__ == '__main__':
    # For development only
    create_app().run(debug=True, port=5000)

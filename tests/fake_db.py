"""In-memory stand-in for firebase_admin.db.Reference.

Supports the calls the admin services make: child, get, set, update
(including multi-location paths and None deletes), delete, push and key.
"""

import copy
import itertools


def _segments(path):
    return [p for p in str(path).split('/') if p]


def _clean(value):
    """Drop None values and empty maps the way the Realtime Database does."""
    if isinstance(value, dict):
        cleaned = {}
        for k, v in value.items():
            v = _clean(v)
            if v is not None:
                cleaned[str(k)] = v
        return cleaned or None
    return copy.deepcopy(value)


class FakeDatabase:
    def __init__(self, data=None):
        self.data = _clean(data or {}) or {}
        self._push_ids = itertools.count(1)
        self.writes = []

    def reference(self, path='/'):
        return FakeReference(self, _segments(path))

    def next_push_id(self):
        return f"-N{next(self._push_ids):08d}"

    # Tree helpers

    def read(self, segments):
        node = self.data
        for segment in segments:
            if isinstance(node, dict) and segment in node:
                node = node[segment]
            elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            else:
                return None
        return copy.deepcopy(node)

    def write(self, segments, value):
        value = _clean(value)
        if not segments:
            self.data = value or {}
            return
        if value is None:
            self.remove(segments)
            return
        node = self.data
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[segments[-1]] = value

    def remove(self, segments):
        if not segments:
            self.data = {}
            return
        parents = []
        node = self.data
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            parents.append((node, segment))
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)
        # Prune parents left empty
        for parent, segment in reversed(parents):
            if parent[segment] == {}:
                del parent[segment]


class FakeReference:
    def __init__(self, database, segments):
        self._db = database
        self._segments = list(segments)

    @property
    def key(self):
        return self._segments[-1] if self._segments else None

    @property
    def path(self):
        return '/' + '/'.join(self._segments)

    def child(self, path):
        return FakeReference(self._db, self._segments + _segments(path))

    def get(self):
        return self._db.read(self._segments)

    def set(self, value):
        if value is None:
            raise ValueError('Value must not be None.')
        self._db.writes.append(('set', self.path, copy.deepcopy(value)))
        self._db.write(self._segments, value)

    def update(self, value):
        if not value or not isinstance(value, dict):
            raise ValueError('Value argument must be a non-empty dictionary.')
        self._db.writes.append(('update', self.path, copy.deepcopy(value)))
        for key, child_value in value.items():
            segments = self._segments + _segments(key)
            if child_value is None:
                self._db.remove(segments)
            else:
                self._db.write(segments, child_value)

    def delete(self):
        self._db.writes.append(('delete', self.path, None))
        self._db.remove(self._segments)

    def push(self, value=''):
        ref = self.child(self._db.next_push_id())
        if value is not None:
            ref.set(value)
        return ref

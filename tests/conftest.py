import os
import sys

# Ensure project root is importable when running pytest from a plain checkout.
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import dataclasses
import itertools
import threading
from collections import Counter

import pytest

from testbed.errors import AlreadyExists, NotFound
from testbed.events import journal
from testbed.models import Instance


class FakeStore:
    """In-memory ObjectStore with call counters and scripted pod snapshots.

    `snapshots` is consumed one entry per list_instances call; the last entry
    keeps repeating once the script runs out.
    """

    def __init__(self):
        self.objects = {}
        self.calls = Counter()
        self.snapshots = [[]]
        self.get_error = None
        self.create_error = None
        self.list_error = None
        self.create_returns_none = False
        self.request_timeouts = []
        # Simulates another writer creating the object between our get and create.
        self.lose_create_race = False
        self._uids = itertools.count(1)
        self._lock = threading.Lock()

    def seed(self, resource):
        live = dataclasses.replace(resource, uid=f"uid-{next(self._uids)}")
        self.objects[(resource.kind, resource.namespace, resource.name)] = live
        return live

    def get(self, kind, namespace, name):
        self.calls["get"] += 1
        self.calls[f"get:{kind.value}"] += 1
        if self.get_error is not None:
            raise self.get_error
        try:
            return self.objects[(kind, namespace, name)]
        except KeyError:
            raise NotFound(f"{kind.value} {namespace}/{name} not found") from None

    def create(self, kind, resource):
        self.calls["create"] += 1
        self.calls[f"create:{kind.value}"] += 1
        if self.create_error is not None:
            raise self.create_error
        if self.create_returns_none:
            return None
        key = (kind, resource.namespace, resource.name)
        # The API server makes create atomic per key.
        with self._lock:
            if self.lose_create_race:
                self.seed(resource)
            if key in self.objects:
                raise AlreadyExists(f"{kind.value} {resource.namespace}/{resource.name} already exists")
            return self.seed(resource)

    def list_instances(self, namespace, selector, timeout_s=None):
        self.calls["list"] += 1
        self.request_timeouts.append(timeout_s)
        if self.list_error is not None:
            raise self.list_error
        idx = min(self.calls["list"] - 1, len(self.snapshots) - 1)
        return [
            i
            for i in self.snapshots[idx]
            if i.namespace == namespace and all(i.labels.get(k) == v for k, v in selector.items())
        ]

    def has(self, kind, namespace, name):
        return (kind, namespace, name) in self.objects


def make_pods(app, ready=0, not_ready=0, namespace="e2e", start=0):
    labels = {"app": app}
    out = []
    for n in range(start, start + ready):
        out.append(Instance(namespace, f"{app}-{n}", labels, "Running", {"Ready": "True"}))
    for n in range(start + ready, start + ready + not_ready):
        # Running but failing its readiness probe.
        out.append(Instance(namespace, f"{app}-{n}", labels, "Running", {"Ready": "False"}))
    return out


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def pods():
    return make_pods


@pytest.fixture(autouse=True)
def _clean_journal():
    journal.clear()
    yield
    journal.clear()


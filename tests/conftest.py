# tests/conftest.py
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from app import create_app
from models import Node, User
from service.traffic.errors import StoreWriteFailure
from service.traffic.store import AccountStore, CounterStore, NodeRegistry
from service.traffic.types import CounterRecord, NodeInfo, QuotaState, RawSnapshot, TrafficCounter
from utils.auth import generate_token
from utils.extensions import db


class MemoryCounterStore(CounterStore):
    """CounterStore 的内存实现"""

    def __init__(self):
        self.records: Dict[Tuple[int, str], CounterRecord] = {}
        self.failing_users = set()
        self.upserts = 0

    def get(self, node_id: int, username: str) -> Optional[CounterRecord]:
        record = self.records.get((node_id, username))
        return replace(record) if record else None

    def upsert(self, record: CounterRecord) -> None:
        if record.username in self.failing_users:
            raise StoreWriteFailure(f"upsert traffic of {record.username} failed")
        self.records[(record.node_id, record.username)] = replace(record)
        self.upserts += 1

    def usage_for(self, username: str) -> int:
        return sum(r.lifetime_total for (_, name), r in self.records.items() if name == username)

    def delete_user(self, username: str) -> int:
        keys = [key for key in self.records if key[1] == username]
        for key in keys:
            del self.records[key]
        return len(keys)

    def commit(self) -> None:
        pass


class MemoryAccountStore(AccountStore):
    def __init__(self):
        self.users: Dict[str, QuotaState] = {}
        self.disable_writes = 0

    def add(self, username, traffic_limit=0, auto_disable_on_limit=True, enabled=True):
        self.users[username] = QuotaState(traffic_limit, auto_disable_on_limit, enabled)

    def get_quota(self, username: str) -> Optional[QuotaState]:
        return self.users.get(username)

    def disable(self, username: str) -> bool:
        quota = self.users.get(username)
        if quota is None or not quota.enabled:
            return False
        self.users[username] = replace(quota, enabled=False)
        self.disable_writes += 1
        return True

    def enable(self, username: str) -> bool:
        quota = self.users.get(username)
        if quota is None or quota.enabled:
            return False
        self.users[username] = replace(quota, enabled=True)
        return True

    def commit(self) -> None:
        pass


class MemoryNodeRegistry(NodeRegistry):
    def __init__(self, nodes: List[NodeInfo]):
        self.nodes = nodes
        self.synced: Dict[int, datetime] = {}

    def enabled_nodes(self) -> List[NodeInfo]:
        return list(self.nodes)

    def mark_synced(self, node_id: int, synced_at: datetime) -> None:
        self.synced[node_id] = synced_at


class StubFetcher:
    """按节点名返回预设快照；值为异常时抛出"""

    def __init__(self):
        self.responses: Dict[str, List] = {}
        self.calls: List[str] = []

    def queue(self, node_name: str, *results):
        self.responses.setdefault(node_name, []).extend(results)

    def fetch(self, node: NodeInfo) -> RawSnapshot:
        self.calls.append(node.name)
        result = self.responses[node.name].pop(0)
        if isinstance(result, Exception):
            raise result
        return {name: TrafficCounter(tx, rx) for name, (tx, rx) in result.items()}


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds=60):
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def counters():
    return MemoryCounterStore()


@pytest.fixture()
def accounts():
    return MemoryAccountStore()


@pytest.fixture()
def nodes():
    return MemoryNodeRegistry([
        NodeInfo(id=1, name='node-1', host='10.0.0.1:8081', secret='s1'),
        NodeInfo(id=2, name='node-2', host='10.0.0.2:8081', secret='s2'),
        NodeInfo(id=3, name='node-3', host='10.0.0.3:8081', secret='s3'),
    ])


@pytest.fixture()
def fetcher():
    return StubFetcher()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app():
    return create_app('testing')


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_headers(app):
    with app.app_context():
        token = generate_token('admin', is_admin=True)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture()
def make_user(app):
    def _make_user(username, password='secret', traffic_limit=0, auto_disable_on_limit=True, enabled=True):
        with app.app_context():
            user = User(username=username, traffic_limit=traffic_limit,  # type: ignore
                        auto_disable_on_limit=auto_disable_on_limit, enabled=enabled)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make_user


@pytest.fixture()
def make_node(app):
    def _make_node(name, host='127.0.0.1:8081', secret='secret', enabled=True):
        with app.app_context():
            node = Node(name=name, host=host, secret=secret, enabled=enabled)  # type: ignore
            db.session.add(node)
            db.session.commit()
            return node.id
    return _make_node

import threading
import requests
from typing import Any, Dict, List, Optional
from utils.extensions import logger
from .errors import NodeBadResponse, NodeTimeout, NodeUnauthorized, NodeUnreachable
from .types import NodeInfo, RawSnapshot, TrafficCounter

MAX_FETCH_TIMEOUT = 5.0
MAX_COUNTER = 2 ** 64 - 1


class NodeTrafficFetcher:
    def __init__(self, timeout: float = MAX_FETCH_TIMEOUT, session: Optional[requests.Session] = None) -> None:
        self.timeout = min(timeout, MAX_FETCH_TIMEOUT)
        self._shared_session = session
        # requests.Session 不保证线程安全，并发抓取时每个线程各用一个
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def fetch(self, node: NodeInfo) -> RawSnapshot:
        """
        抓取节点当前的用户流量计数

        Raises:
            NodeTimeout, NodeUnreachable, NodeUnauthorized, NodeBadResponse
        """
        traffic_url = f"http://{node.host}/traffic"

        try:
            response = self.session.get(
                traffic_url,
                headers={"Authorization": node.secret},
                timeout=self.timeout
            )
        except requests.Timeout as e:
            raise NodeTimeout(node.name, f"Connection timeout ({node.host}): {e}")
        except requests.RequestException as e:
            raise NodeUnreachable(node.name, f"Request error ({node.host}): {e}")

        if response.status_code in (401, 403):
            raise NodeUnauthorized(node.name, f"Secret rejected with HTTP {response.status_code}")
        if response.status_code != 200:
            raise NodeBadResponse(node.name, f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as json_error:
            raise NodeBadResponse(node.name, f"JSON decode error: {json_error}")

        snapshot = parse_snapshot(node.name, data)
        logger.debug(f"[{node.name}] Fetched traffic for {len(snapshot)} users.")
        return snapshot

    def close(self) -> None:
        """关闭所有线程创建的连接池；外部传入的 session 同样关闭"""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        if self._shared_session is not None:
            sessions.append(self._shared_session)
        for session in sessions:
            session.close()


def parse_snapshot(node_name: str, data: Any) -> RawSnapshot:
    """按 {username: {"tx": int, "rx": int}} 校验并转换节点返回的数据"""
    if not isinstance(data, dict):
        raise NodeBadResponse(node_name, f"Expected JSON object, got {type(data).__name__}")

    snapshot: RawSnapshot = {}
    for username, stats in data.items():
        if not isinstance(stats, dict):
            raise NodeBadResponse(node_name, f"Invalid entry for user {username!r}")
        snapshot[username] = TrafficCounter(
            tx=_parse_counter(node_name, username, stats, "tx"),
            rx=_parse_counter(node_name, username, stats, "rx")
        )
    return snapshot


def _parse_counter(node_name: str, username: str, stats: Dict, key: str) -> int:
    value = stats.get(key)
    # bool 是 int 的子类，需要单独排除
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise NodeBadResponse(node_name, f"Non-numeric {key} for user {username!r}: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise NodeBadResponse(node_name, f"Non-integral {key} for user {username!r}: {value!r}")
        value = int(value)
    if value < 0:
        raise NodeBadResponse(node_name, f"Negative {key} for user {username!r}: {value}")
    if value > MAX_COUNTER:
        raise NodeBadResponse(node_name, f"{key} for user {username!r} exceeds unsigned 64-bit: {value}")
    return value

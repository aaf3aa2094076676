"""
流量存储接口及其 SQLAlchemy 实现

对账引擎、配额检查和流量重置只依赖这里的抽象接口，
由调用方在构造时注入具体实现（测试中使用内存实现）。
写操作只暂存在会话中，调用 commit() 后才生效。
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from models import Node, TrafficStat, User
from .errors import StoreError, StoreWriteFailure
from .types import CounterRecord, NodeInfo, QuotaState


class CounterStore(ABC):
    """(节点, 用户) 累计流量表"""

    @abstractmethod
    def get(self, node_id: int, username: str) -> Optional[CounterRecord]:
        ...

    @abstractmethod
    def upsert(self, record: CounterRecord) -> None:
        """按 (node_id, username) 插入或覆盖记录"""

    @abstractmethod
    def usage_for(self, username: str) -> int:
        """用户在所有节点上的 lifetime_tx + lifetime_rx 之和"""

    @abstractmethod
    def delete_user(self, username: str) -> int:
        """删除用户在所有节点上的记录，返回删除条数"""

    @abstractmethod
    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        pass


class AccountStore(ABC):
    """用户账号（配额和启用状态）"""

    @abstractmethod
    def get_quota(self, username: str) -> Optional[QuotaState]:
        ...

    @abstractmethod
    def disable(self, username: str) -> bool:
        """停用账号；账号已停用或不存在时返回 False"""

    @abstractmethod
    def enable(self, username: str) -> bool:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        pass


class NodeRegistry(ABC):
    """节点注册表"""

    @abstractmethod
    def enabled_nodes(self) -> List[NodeInfo]:
        ...

    @abstractmethod
    def mark_synced(self, node_id: int, synced_at: datetime) -> None:
        ...


class _SQLStore:
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _guard(self, action: str, error_cls=StoreError):
        try:
            yield
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            # 超出 BIGINT 范围的计数由驱动直接抛出 OverflowError
            self.session.rollback()
            raise error_cls(f"{action}: {e}") from e

    def commit(self) -> None:
        with self._guard("commit", StoreWriteFailure):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLCounterStore(_SQLStore, CounterStore):
    def get(self, node_id: int, username: str) -> Optional[CounterRecord]:
        with self._guard(f"query traffic of {username} on node {node_id}"):
            stat = self.session.query(TrafficStat).filter_by(node_id=node_id, username=username).first()
        if stat is None:
            return None
        return CounterRecord(
            node_id=stat.node_id,
            username=stat.username,
            lifetime_tx=stat.lifetime_tx,
            lifetime_rx=stat.lifetime_rx,
            last_observed_tx=stat.last_tx,
            last_observed_rx=stat.last_rx,
            updated_at=stat.updated_at
        )

    def upsert(self, record: CounterRecord) -> None:
        values = {
            'lifetime_tx': record.lifetime_tx,
            'lifetime_rx': record.lifetime_rx,
            'last_tx': record.last_observed_tx,
            'last_rx': record.last_observed_rx,
            'updated_at': record.updated_at,
        }
        with self._guard(f"upsert traffic of {record.username} on node {record.node_id}", StoreWriteFailure):
            dialect = self.session.get_bind(mapper=TrafficStat).dialect.name
            if dialect in ('sqlite', 'postgresql'):
                insert = sqlite.insert if dialect == 'sqlite' else postgresql.insert
                stmt = insert(TrafficStat).values(
                    node_id=record.node_id,
                    username=record.username,
                    created_at=record.updated_at,
                    **values
                )
                stmt = stmt.on_conflict_do_update(index_elements=['node_id', 'username'], set_=values)
                self.session.execute(stmt)
            else:
                stat = self.session.query(TrafficStat).filter_by(
                    node_id=record.node_id, username=record.username
                ).with_for_update().first()
                if stat is None:
                    stat = TrafficStat(node_id=record.node_id, username=record.username)  # type: ignore
                    self.session.add(stat)
                stat.lifetime_tx = values['lifetime_tx']
                stat.lifetime_rx = values['lifetime_rx']
                stat.last_tx = values['last_tx']
                stat.last_rx = values['last_rx']
                stat.updated_at = values['updated_at']

    def usage_for(self, username: str) -> int:
        with self._guard(f"sum traffic of {username}"):
            total = self.session.query(
                func.coalesce(func.sum(TrafficStat.lifetime_tx + TrafficStat.lifetime_rx), 0)
            ).filter(TrafficStat.username == username).scalar()
        return int(total or 0)

    def delete_user(self, username: str) -> int:
        with self._guard(f"delete traffic of {username}", StoreWriteFailure):
            return self.session.query(TrafficStat).filter_by(username=username).delete(synchronize_session=False)

    def totals_by_user(self) -> Dict[str, Tuple[int, int]]:
        """所有用户跨节点的 (tx, rx) 合计"""
        with self._guard("aggregate traffic"):
            rows = self.session.query(
                TrafficStat.username,
                func.sum(TrafficStat.lifetime_tx),
                func.sum(TrafficStat.lifetime_rx)
            ).group_by(TrafficStat.username).all()
        return {username: (int(tx or 0), int(rx or 0)) for username, tx, rx in rows}

    def totals_for(self, username: str) -> Tuple[int, int]:
        with self._guard(f"aggregate traffic of {username}"):
            tx, rx = self.session.query(
                func.coalesce(func.sum(TrafficStat.lifetime_tx), 0),
                func.coalesce(func.sum(TrafficStat.lifetime_rx), 0)
            ).filter(TrafficStat.username == username).one()
        return int(tx), int(rx)

    def records_by_node(self) -> List[TrafficStat]:
        """按节点分组、最近更新在前的全部记录"""
        with self._guard("list traffic by node"):
            return self.session.query(TrafficStat).join(Node, TrafficStat.node_id == Node.id).order_by(
                Node.id, TrafficStat.updated_at.desc()
            ).all()


class SQLAccountStore(_SQLStore, AccountStore):
    def get_quota(self, username: str) -> Optional[QuotaState]:
        with self._guard(f"query quota of {username}"):
            user = self.session.query(User).filter_by(username=username).first()
        if user is None:
            return None
        return QuotaState(
            traffic_limit=user.traffic_limit or 0,
            auto_disable_on_limit=bool(user.auto_disable_on_limit),
            enabled=bool(user.enabled)
        )

    def disable(self, username: str) -> bool:
        with self._guard(f"disable {username}", StoreWriteFailure):
            # 仅在账号仍启用时更新，重复停用不产生变化
            updated = self.session.query(User).filter(
                User.username == username, User.enabled.is_(True)
            ).update({User.enabled: False}, synchronize_session=False)
        return updated > 0

    def enable(self, username: str) -> bool:
        with self._guard(f"enable {username}", StoreWriteFailure):
            updated = self.session.query(User).filter(
                User.username == username, User.enabled.is_(False)
            ).update({User.enabled: True}, synchronize_session=False)
        return updated > 0


class SQLNodeRegistry(_SQLStore, NodeRegistry):
    def enabled_nodes(self) -> List[NodeInfo]:
        with self._guard("query enabled nodes"):
            nodes: List[Node] = self.session.query(Node).filter(Node.enabled.is_(True)).order_by(Node.id).all()
        return [NodeInfo(id=node.id, name=node.name, host=node.host, secret=node.secret) for node in nodes]

    def mark_synced(self, node_id: int, synced_at: datetime) -> None:
        with self._guard(f"update last_sync_at of node {node_id}", StoreWriteFailure):
            self.session.query(Node).filter_by(id=node_id).update(
                {Node.last_sync_at: synced_at}, synchronize_session=False
            )
        self.commit()

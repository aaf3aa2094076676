"""流量对账使用的数据结构"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class TrafficCounter:
    """节点上报的某个用户的原始计数（字节）"""
    tx: int
    rx: int

    def is_empty(self) -> bool:
        return self.tx == 0 and self.rx == 0


# 单次抓取结果：username -> 原始计数，用完即弃，不落库
RawSnapshot = Dict[str, TrafficCounter]


@dataclass(frozen=True)
class NodeInfo:
    """已启用节点的连接信息"""
    id: int
    name: str
    host: str
    secret: str


@dataclass
class CounterRecord:
    """(节点, 用户) 维度的累计流量记录"""
    node_id: int
    username: str
    lifetime_tx: int = 0
    lifetime_rx: int = 0
    last_observed_tx: int = 0
    last_observed_rx: int = 0
    updated_at: Optional[datetime] = None

    @property
    def lifetime_total(self) -> int:
        return self.lifetime_tx + self.lifetime_rx


@dataclass(frozen=True)
class QuotaState:
    """用户的配额设置"""
    traffic_limit: int
    auto_disable_on_limit: bool
    enabled: bool


@dataclass
class TickReport:
    """一次同步周期的执行结果"""
    started_at: datetime
    synced_nodes: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    updated_records: int = 0
    disabled_users: List[str] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> Dict:
        return {
            'started_at': self.started_at.strftime('%Y-%m-%d %H:%M:%S'),
            'synced_nodes': list(self.synced_nodes),
            'failures': dict(self.failures),
            'updated_records': self.updated_records,
            'disabled_users': list(self.disabled_users),
            'skipped': self.skipped
        }

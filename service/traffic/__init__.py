from flask import current_app
from utils.extensions import db
from .errors import (
    NodeFetchError,
    NodeUnreachable,
    NodeTimeout,
    NodeUnauthorized,
    NodeBadResponse,
    StoreError,
    StoreWriteFailure
)
from .fetcher import NodeTrafficFetcher
from .quota import QuotaEnforcer
from .reconciler import TrafficReconciler, reconcile_counter
from .reset import reset_user_traffic
from .store import SQLAccountStore, SQLCounterStore, SQLNodeRegistry
from .types import CounterRecord, NodeInfo, QuotaState, RawSnapshot, TickReport, TrafficCounter


def build_quota_enforcer() -> QuotaEnforcer:
    """基于当前应用数据库会话创建配额检查器"""
    return QuotaEnforcer(SQLCounterStore(db.session), SQLAccountStore(db.session))


def build_reconciler() -> TrafficReconciler:
    """基于当前应用配置创建对账引擎，需在应用上下文中调用"""
    counters = SQLCounterStore(db.session)
    accounts = SQLAccountStore(db.session)
    return TrafficReconciler(
        counters=counters,
        accounts=accounts,
        nodes=SQLNodeRegistry(db.session),
        fetcher=NodeTrafficFetcher(timeout=current_app.config['NODE_FETCH_TIMEOUT']),
        enforcer=QuotaEnforcer(counters, accounts),
        max_workers=current_app.config['TRAFFIC_FETCH_WORKERS']
    )


__all__ = [
    'NodeFetchError', 'NodeUnreachable', 'NodeTimeout', 'NodeUnauthorized', 'NodeBadResponse',
    'StoreError', 'StoreWriteFailure',
    'NodeTrafficFetcher', 'QuotaEnforcer', 'TrafficReconciler', 'reconcile_counter', 'reset_user_traffic',
    'SQLAccountStore', 'SQLCounterStore', 'SQLNodeRegistry',
    'CounterRecord', 'NodeInfo', 'QuotaState', 'RawSnapshot', 'TickReport', 'TrafficCounter',
    'build_quota_enforcer', 'build_reconciler',
]

"""
流量对账引擎

节点上报的是自进程启动以来的累计计数，节点重启后会归零。
每个周期抓取所有已启用节点，把原始计数折算进 (节点, 用户) 维度
只增不减的累计流量，然后检查流量配额。
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from .errors import NodeFetchError, NodeTimeout, StoreError
from .fetcher import NodeTrafficFetcher
from .quota import QuotaEnforcer
from .store import AccountStore, CounterStore, NodeRegistry
from .types import CounterRecord, NodeInfo, RawSnapshot, TickReport, TrafficCounter

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def detect_restart(record: Optional[CounterRecord], counter: TrafficCounter) -> bool:
    """任一计数小于上次观测值即视为节点重启"""
    if record is None:
        return False
    return counter.tx < record.last_observed_tx or counter.rx < record.last_observed_rx


def reconcile_counter(record: Optional[CounterRecord], node_id: int, username: str,
                      counter: TrafficCounter, now: datetime) -> CounterRecord:
    """
    根据上次记录和本次原始计数计算新的累计流量

    - 首次观测：累计值等于本次原始值
    - 计数未回退：累计值加上与上次观测值的差
    - 节点重启：累计值加上本次原始值（上次观测到重启之间的流量无法找回）
    """
    if record is None:
        lifetime_tx = counter.tx
        lifetime_rx = counter.rx
    elif detect_restart(record, counter):
        lifetime_tx = record.lifetime_tx + counter.tx
        lifetime_rx = record.lifetime_rx + counter.rx
    else:
        lifetime_tx = record.lifetime_tx + (counter.tx - record.last_observed_tx)
        lifetime_rx = record.lifetime_rx + (counter.rx - record.last_observed_rx)

    return CounterRecord(
        node_id=node_id,
        username=username,
        lifetime_tx=lifetime_tx,
        lifetime_rx=lifetime_rx,
        last_observed_tx=counter.tx,
        last_observed_rx=counter.rx,
        updated_at=now
    )


class TrafficReconciler:
    """流量对账引擎，CounterRecord 的唯一写入方"""

    def __init__(self, counters: CounterStore, accounts: AccountStore, nodes: NodeRegistry,
                 fetcher: NodeTrafficFetcher, enforcer: Optional[QuotaEnforcer] = None,
                 max_workers: int = 4, clock: Callable[[], datetime] = utcnow):
        self.counters = counters
        self.accounts = accounts
        self.nodes = nodes
        self.fetcher = fetcher
        self.enforcer = enforcer or QuotaEnforcer(counters, accounts)
        self.max_workers = max(1, max_workers)
        self.clock = clock
        self._tick_lock = threading.Lock()

    def run_once(self) -> TickReport:
        """执行一次同步周期；上一个周期未结束时直接跳过"""
        report = TickReport(started_at=self.clock())
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("上一次流量同步仍在进行，跳过本次同步")
            report.skipped = True
            return report

        try:
            self._run(report)
        finally:
            self._tick_lock.release()
        return report

    def close(self) -> None:
        """释放抓取器持有的连接"""
        close = getattr(self.fetcher, 'close', None)
        if close is not None:
            close()

    def _run(self, report: TickReport) -> None:
        try:
            nodes = self.nodes.enabled_nodes()
        except StoreError as e:
            logger.error(f"查询节点列表失败: {e}")
            return

        if not nodes:
            logger.info("没有已启用的节点")
            return

        logger.info(f"开始从 {len(nodes)} 个节点同步流量...")

        # 并发抓取，随后按节点顺序依次对账
        for node, snapshot in self.fetch_all(nodes, report):
            try:
                self.reconcile_node(node, snapshot, report)
            except Exception as e:
                self.counters.rollback()
                report.failures[node.name] = str(e)
                logger.error(f"处理节点 {node.name} 的流量时发生错误: {str(e)}", exc_info=True)

        logger.info(
            f"流量同步完成: 成功 {len(report.synced_nodes)} 个节点，失败 {len(report.failures)} 个，"
            f"更新 {report.updated_records} 条记录，停用 {len(report.disabled_users)} 个用户"
        )

    def fetch_all(self, nodes: List[NodeInfo], report: TickReport) -> List[Tuple[NodeInfo, RawSnapshot]]:
        """抓取所有节点，失败的节点记入 report 并被跳过"""
        results = []
        workers = min(self.max_workers, len(nodes))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='traffic-fetch') as executor:
            futures = [(node, executor.submit(self.fetcher.fetch, node)) for node in nodes]
            for node, future in futures:
                try:
                    results.append((node, future.result()))
                except NodeTimeout as e:
                    report.failures[node.name] = f"{type(e).__name__}: {e.message}"
                    logger.warning(f"获取节点 {node.name} ({node.host}) 流量超时，请确认节点地址可访问")
                except NodeFetchError as e:
                    report.failures[node.name] = f"{type(e).__name__}: {e.message}"
                    logger.error(f"获取节点 {node.name} ({node.host}) 流量失败: {e.message}")
                except Exception as e:
                    report.failures[node.name] = str(e)
                    logger.error(f"获取节点 {node.name} 流量时发生错误: {str(e)}", exc_info=True)
        return results

    def reconcile_node(self, node: NodeInfo, snapshot: RawSnapshot, report: TickReport) -> None:
        """把一个节点的快照折算进累计流量，并更新节点同步时间"""
        now = self.clock()

        for username, counter in snapshot.items():
            # 没有流量的用户不落库
            if counter.is_empty():
                continue

            try:
                record = self.counters.get(node.id, username)
                updated = reconcile_counter(record, node.id, username, counter, now)
                self.counters.upsert(updated)
                self.counters.commit()
            except StoreError as e:
                self.counters.rollback()
                logger.error(f"更新用户 {username} 在节点 {node.name} 的流量失败: {e}")
                continue

            if detect_restart(record, counter):
                logger.info(
                    f"检测到节点 {node.name} 重启，用户 {username} 按新增流量累加: "
                    f"tx={counter.tx}, rx={counter.rx}"
                )
            logger.debug(
                f"已更新用户 {username} 在节点 {node.name} 的流量: "
                f"total_tx={updated.lifetime_tx}, total_rx={updated.lifetime_rx} "
                f"(current: {counter.tx}/{counter.rx})"
            )
            report.updated_records += 1

            try:
                if self.enforcer.enforce(username):
                    report.disabled_users.append(username)
            except StoreError as e:
                logger.error(f"检查用户 {username} 流量配额失败: {e}")

        try:
            self.nodes.mark_synced(node.id, now)
        except StoreError as e:
            logger.error(f"更新节点 {node.name} 同步时间失败: {e}")
        report.synced_nodes.append(node.name)

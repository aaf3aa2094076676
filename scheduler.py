"""
定时任务调度器
负责按固定周期从所有节点同步流量并检查配额
"""
import atexit
import logging
from typing import Optional
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask
from service.traffic import TrafficReconciler, build_reconciler

logger = logging.getLogger(__name__)

class TrafficScheduler:
    """流量同步调度器"""

    def __init__(self, app: Flask):
        self.app = app
        self.interval = app.config['TRAFFIC_SYNC_INTERVAL']
        self.scheduler = BackgroundScheduler(timezone='UTC')
        self._reconciler: Optional[TrafficReconciler] = None

    def start(self):
        """启动调度器"""
        # 同一时间只允许一个同步任务运行，错过的周期合并执行
        self.scheduler.add_job(
            func=self._run_traffic_sync,
            trigger='interval',
            seconds=self.interval,
            id='traffic_sync',
            name='流量同步任务',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(f"流量同步调度器已启动，将每 {self.interval} 秒执行一次任务")

        # 启动后立即执行一次流量同步
        logger.info("立即执行首次流量同步...")
        try:
            self._run_traffic_sync()
            logger.info("首次执行完成")
        except Exception as e:
            logger.error(f"首次执行任务时发生错误: {str(e)}", exc_info=True)

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("流量同步调度器已停止")
        if self._reconciler is not None:
            self._reconciler.close()
            self._reconciler = None

    def _get_reconciler(self) -> TrafficReconciler:
        # 复用同一个引擎实例，周期互斥依赖引擎内部的锁
        if self._reconciler is None:
            self._reconciler = build_reconciler()
        return self._reconciler

    def _run_traffic_sync(self):
        """执行流量同步任务（在应用上下文中运行）"""
        with self.app.app_context():
            try:
                logger.debug("开始执行流量同步任务...")
                report = self._get_reconciler().run_once()
                for node_name, error in report.failures.items():
                    logger.debug(f"节点 {node_name} 本周期同步失败: {error}")
                logger.debug("流量同步任务执行完成")
            except Exception as e:
                logger.error(f"执行流量同步任务时发生错误: {str(e)}", exc_info=True)

    def run_now(self):
        """立即执行一次同步，返回本次结果（需在应用上下文中调用）"""
        return self._get_reconciler().run_once()


# 全局调度器实例
_scheduler = None

def init_scheduler(app: Flask):
    """初始化调度器"""
    global _scheduler
    if _scheduler is None:
        _scheduler = TrafficScheduler(app)
        _scheduler.start()
        atexit.register(_scheduler.stop)

def get_scheduler() -> TrafficScheduler:
    """获取调度器实例"""
    if _scheduler is None:
        raise RuntimeError("Scheduler has not been initialized.")
    return _scheduler

from utils.extensions import logger
from .store import AccountStore, CounterStore


class QuotaEnforcer:
    """
    流量配额检查

    用户设置了流量上限且开启自动停用时，所有节点累计流量达到上限即停用账号。
    同步任务每次更新记录后调用，认证接口每次认证时也会调用。
    """

    def __init__(self, counters: CounterStore, accounts: AccountStore):
        self.counters = counters
        self.accounts = accounts

    def usage(self, username: str) -> int:
        return self.counters.usage_for(username)

    def is_over_limit(self, username: str) -> bool:
        quota = self.accounts.get_quota(username)
        if quota is None or quota.traffic_limit <= 0 or not quota.auto_disable_on_limit:
            return False
        return self.usage(username) >= quota.traffic_limit

    def enforce(self, username: str) -> bool:
        """
        超限则停用账号

        Returns:
            bool: 本次调用停用了账号返回 True；已停用、未超限或无限制的用户返回 False
        """
        quota = self.accounts.get_quota(username)
        if quota is None or quota.traffic_limit <= 0 or not quota.auto_disable_on_limit:
            return False
        if not quota.enabled:
            return False

        used = self.usage(username)
        if used < quota.traffic_limit:
            return False

        disabled = self.accounts.disable(username)
        self.accounts.commit()
        if disabled:
            logger.info(f"用户 {username} 流量超限已自动停用: {used}/{quota.traffic_limit} bytes")
        return disabled

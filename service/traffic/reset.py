from utils.extensions import logger
from .store import AccountStore, CounterStore


def reset_user_traffic(username: str, counters: CounterStore, accounts: AccountStore) -> int:
    """
    清空用户在所有节点上的流量记录并重新启用账号

    两个存储共用同一个数据库会话时，删除与启用在同一次提交中生效。
    与同步任务并发时，本周期该用户的更新可能丢失或在重置后重新计入。

    Returns:
        int: 删除的记录数

    Raises:
        LookupError: 用户不存在
    """
    if accounts.get_quota(username) is None:
        raise LookupError(username)

    try:
        deleted = counters.delete_user(username)
        accounts.enable(username)
        counters.commit()
        accounts.commit()
    except Exception:
        counters.rollback()
        accounts.rollback()
        raise

    logger.info(f"已重置用户 {username} 的流量，删除 {deleted} 条节点记录")
    return deleted

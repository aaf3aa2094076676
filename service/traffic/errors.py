"""流量同步相关异常"""


class NodeFetchError(Exception):
    """节点流量抓取失败的基类，本周期跳过该节点"""

    def __init__(self, node_name: str, message: str):
        super().__init__(f"[{node_name}] {message}")
        self.node_name = node_name
        self.message = message


class NodeUnreachable(NodeFetchError):
    """节点无法连接"""


class NodeTimeout(NodeFetchError):
    """节点请求超时"""


class NodeUnauthorized(NodeFetchError):
    """节点拒绝了密钥"""


class NodeBadResponse(NodeFetchError):
    """节点返回非 200 状态或无法解析的数据"""


class StoreError(Exception):
    """存储层读写失败"""


class StoreWriteFailure(StoreError):
    """持久化失败，下个周期会重新对账"""

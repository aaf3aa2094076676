"""数据库模型"""
from .user import User
from .node import Node
from .traffic import TrafficStat

__all__ = ['User', 'Node', 'TrafficStat']

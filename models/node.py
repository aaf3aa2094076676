"""代理节点模型"""
from datetime import datetime, timezone
from utils.extensions import db


class Node(db.Model):
    """Hysteria 节点数据模型"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    host = db.Column(db.String(255), nullable=False)  # 流量统计接口地址，格式 host:port
    secret = db.Column(db.String(255), nullable=False)  # 流量统计接口密钥
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    last_sync_at = db.Column(db.DateTime, nullable=True)  # 最近一次成功同步时间

    # 节点删除时一并删除流量记录
    traffic_stats = db.relationship('TrafficStat', backref='node', lazy=True,
                                    cascade='all, delete-orphan', passive_deletes=True)

    def __repr__(self):
        return f'<Node {self.name} @ {self.host}>'

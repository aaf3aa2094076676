"""节点流量统计模型"""
from datetime import datetime, timezone
from utils.extensions import db


class TrafficStat(db.Model):
    """
    用户在单个节点上的累计流量

    lifetime_tx/lifetime_rx: 累计总流量，只增不减，不会因节点重启而清零
    last_tx/last_rx: 上次从节点获取的原始计数，用于检测节点重启
    """
    __tablename__ = 'traffic_stats'
    __table_args__ = (
        db.UniqueConstraint('node_id', 'username', name='uq_traffic_stats_node_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    node_id = db.Column(db.Integer, db.ForeignKey('node.id', ondelete='CASCADE'), nullable=False)
    username = db.Column(db.String(80), nullable=False, index=True)
    lifetime_tx = db.Column(db.BigInteger, default=0, nullable=False)
    lifetime_rx = db.Column(db.BigInteger, default=0, nullable=False)
    last_tx = db.Column(db.BigInteger, default=0, nullable=False)
    last_rx = db.Column(db.BigInteger, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f'<TrafficStat node_id={self.node_id} user={self.username} tx={self.lifetime_tx} rx={self.lifetime_rx}>'

    def to_dict(self):
        """转换为字典格式"""
        return {
            'node_id': self.node_id,
            'node_name': self.node.name if self.node else None,
            'username': self.username,
            'tx': self.lifetime_tx,
            'rx': self.lifetime_rx,
            'updated_at': self.updated_at.strftime('%Y-%m-%d %H:%M:%S') if self.updated_at else None
        }

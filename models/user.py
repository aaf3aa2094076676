"""用户模型"""
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash
from utils.extensions import db


class User(db.Model):
    """代理用户数据模型"""
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(200), nullable=False)
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # 流量限制相关字段
    traffic_limit = db.Column(db.BigInteger, default=0, nullable=False)  # 流量上限（字节），0 表示不限
    auto_disable_on_limit = db.Column(db.Boolean, default=True, nullable=False)  # 超限后自动停用

    def set_password(self, password):
        """设置密码"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """验证密码"""
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.username}>'

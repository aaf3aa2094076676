"""应用配置"""
import os
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()


class Config:
    """基础配置"""
    # Flask配置
    SECRET_KEY = os.getenv('SECRET_KEY')
    TESTING = False

    # JWT配置（仅用于校验管理接口的令牌）
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = 7 * 24 * 3600  # JWT过期时间（秒），默认7天

    # 数据库配置
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///data.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 服务器配置
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 5000))
    THREADS = int(os.getenv("THREADS", 4))

    # 流量同步配置
    SCHEDULER_ENABLED = os.getenv('SCHEDULER_ENABLED', 'true').lower() == 'true'
    TRAFFIC_SYNC_INTERVAL = int(os.getenv('TRAFFIC_SYNC_INTERVAL', 60))  # 同步周期（秒）
    # 单个节点请求超时（秒），上限5秒
    NODE_FETCH_TIMEOUT = min(float(os.getenv('NODE_FETCH_TIMEOUT', 5)), 5.0)
    TRAFFIC_FETCH_WORKERS = int(os.getenv('TRAFFIC_FETCH_WORKERS', 4))

    # 所有时间字段应使用 UTC 时间


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False


class TestingConfig(Config):
    """测试环境配置"""
    TESTING = True
    SECRET_KEY = 'testing-secret'
    JWT_SECRET_KEY = 'testing-jwt-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SCHEDULER_ENABLED = False


# 配置字典
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}

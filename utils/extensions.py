"""Flask扩展初始化：数据库与日志"""
from flask_sqlalchemy import SQLAlchemy
import logging
import os

# 初始化数据库
db = SQLAlchemy()


def setup_logging():
    """配置应用日志（文件 + 控制台）"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(os.getenv('LOG_FILE', 'app.log'), encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
    logging.getLogger().setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

    # 每个周期都会打印任务执行信息，调度器和连接池只保留警告
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    return logging.getLogger('hyboard')

logger = setup_logging()

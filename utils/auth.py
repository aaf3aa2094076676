"""管理接口令牌工具函数"""
import jwt
from datetime import datetime, timedelta, timezone
from flask import current_app
from utils.extensions import logger


def generate_token(username, is_admin=True, expires_in=None):
    """
    生成管理接口使用的JWT token

    Args:
        username: 令牌持有者
        is_admin: 是否为管理员
        expires_in: 有效期（秒），默认使用 JWT_ACCESS_TOKEN_EXPIRES

    Returns:
        str: JWT token
    """
    if expires_in is None:
        expires_in = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    now = datetime.now(timezone.utc)

    payload = {
        'username': username,
        'is_admin': is_admin,
        'exp': now + timedelta(seconds=expires_in),
        'iat': now
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm='HS256')


def verify_token(token):
    """
    验证JWT token

    Args:
        token: JWT token

    Returns:
        dict: 解码后的payload，如果失败返回None
    """
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        logger.warning('Token验证失败：token已过期')
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f'Token验证失败：无效的token - {str(e)}')
        return None


def parse_proxy_auth(auth):
    """
    解析 Hysteria 认证字符串 "username:password"

    Returns:
        tuple: (username, password)，格式不正确时返回 None
    """
    if not isinstance(auth, str) or ':' not in auth:
        return None
    username, password = auth.split(':', 1)
    return username, password

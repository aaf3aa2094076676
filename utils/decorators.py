"""Flask路由装饰器"""
from functools import wraps
from flask import jsonify, request, g
from utils.auth import verify_token


def _get_request_token():
    """优先从 Authorization: Bearer 头获取 token，其次从 cookie 获取"""
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[len('Bearer '):].strip()
    return request.cookies.get('access_token')


def admin_required(f):
    """
    管理员权限验证装饰器
    用于流量查询、重置等管理接口
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _get_request_token()
        if not token:
            return jsonify({'error': '未登录'}), 401

        payload = verify_token(token)
        if not payload:
            return jsonify({'error': '登录已过期，请重新登录'}), 401

        # 将令牌信息存储到g对象中供路由使用
        g.username = payload.get('username')
        g.is_admin = payload.get('is_admin', False)

        if not g.is_admin:
            return jsonify({'error': '权限不足'}), 403

        return f(*args, **kwargs)
    return decorated_function

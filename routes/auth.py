"""Hysteria 认证路由"""
from flask import Blueprint, request, jsonify
from utils.extensions import logger
from models import User
from utils import parse_proxy_auth
from service.traffic import StoreError, build_quota_enforcer

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/auth', methods=['POST'])
def auth():
    """
    Hysteria2 HTTP 认证接口

    请求体: {"addr": "1.2.3.4:5678", "auth": "username:password", "tx": 0}
    认证成功返回 {"ok": true, "id": username}，id 用于节点的流量统计
    """
    logger.info(f"收到来自 {request.remote_addr} 的认证请求")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        logger.warning("认证请求体解析失败")
        return jsonify({'ok': False, 'error': 'Invalid request'}), 400

    if not isinstance(data.get('auth'), str):
        logger.warning(f"认证请求缺少 auth 字段，来自 {data.get('addr')}")
        return jsonify({'ok': False, 'error': 'Invalid request'}), 400

    credentials = parse_proxy_auth(data['auth'])
    if credentials is None:
        logger.warning(f"认证字符串格式错误，来自 {data.get('addr')}")
        return jsonify({'ok': False, 'error': "Invalid auth format. Use 'username:password'"}), 401
    username, password = credentials

    user: User = User.query.filter_by(username=username).first()  # type: ignore
    if not user:
        logger.warning(f"用户不存在: {username}")
        return jsonify({'ok': False, 'error': 'User not found'}), 401

    if not user.enabled:
        logger.warning(f"用户已停用: {username}")
        return jsonify({'ok': False, 'error': 'User is disabled'}), 403

    if not user.check_password(password):
        logger.warning(f"用户 {username} 密码错误")
        return jsonify({'ok': False, 'error': 'Invalid password'}), 401

    # 认证时同步检查流量配额，避免等到下一个同步周期
    try:
        if build_quota_enforcer().enforce(username):
            return jsonify({'ok': False, 'error': 'Traffic limit exceeded. Account disabled.'}), 403
    except StoreError as e:
        logger.error(f"检查用户 {username} 流量配额失败: {e}")

    logger.info(f"用户 {username} 认证成功")
    return jsonify({'ok': True, 'id': username})

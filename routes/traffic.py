"""流量统计路由"""
from flask import Blueprint, jsonify
from utils.extensions import db, logger
from models import User
from utils import admin_required
from service.traffic import SQLAccountStore, SQLCounterStore, StoreError, build_reconciler, reset_user_traffic

traffic_bp = Blueprint('traffic', __name__, url_prefix='/api')


@traffic_bp.route('/traffic/aggregated')
@admin_required
def traffic_aggregated():
    """所有用户跨节点的累计流量"""
    totals = SQLCounterStore(db.session).totals_by_user()
    return jsonify({username: {'tx': tx, 'rx': rx} for username, (tx, rx) in totals.items()})


@traffic_bp.route('/traffic/by-node')
@admin_required
def traffic_by_node():
    """按节点列出每个用户的累计流量"""
    records = SQLCounterStore(db.session).records_by_node()
    return jsonify([record.to_dict() for record in records])


@traffic_bp.route('/traffic/sync', methods=['POST'])
@admin_required
def traffic_sync():
    """立即执行一次流量同步"""
    from scheduler import get_scheduler

    try:
        report = get_scheduler().run_now()
    except RuntimeError:
        # 调度器未启动（例如测试环境）时直接创建引擎执行
        reconciler = build_reconciler()
        try:
            report = reconciler.run_once()
        finally:
            reconciler.close()
    return jsonify(report.to_dict())


@traffic_bp.route('/users/<int:user_id>/traffic')
@admin_required
def user_traffic(user_id):
    """单个用户的累计流量和配额状态"""
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': '用户不存在'}), 404

    tx, rx = SQLCounterStore(db.session).totals_for(user.username)
    return jsonify({
        'username': user.username,
        'tx': tx,
        'rx': rx,
        'total': tx + rx,
        'traffic_limit': user.traffic_limit,
        'auto_disable_on_limit': user.auto_disable_on_limit,
        'enabled': user.enabled
    })


@traffic_bp.route('/users/<int:user_id>/reset-traffic', methods=['POST'])
@admin_required
def reset_traffic(user_id):
    """清空用户流量记录并重新启用账号"""
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': '用户不存在'}), 404
    username = user.username

    try:
        deleted = reset_user_traffic(username, SQLCounterStore(db.session), SQLAccountStore(db.session))
    except LookupError:
        return jsonify({'error': '用户不存在'}), 404
    except StoreError as e:
        logger.error(f"重置用户 {username} 流量失败: {e}")
        return jsonify({'error': '重置流量失败'}), 500

    logger.info(f"管理员重置了用户 {username} (ID: {user_id}) 的流量")
    return jsonify({'message': 'Traffic reset successfully', 'deleted': deleted})

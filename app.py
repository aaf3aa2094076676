import os
from flask import Flask, jsonify
from waitress import serve
from config import config
from utils.extensions import db, logger
from routes import auth_bp, traffic_bp
from service.traffic import StoreError


def create_app(config_name=None):
    """创建并配置 Flask 应用"""
    config_name = config_name or os.getenv('FLASK_ENV', 'default')
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    db.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(traffic_bp)

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        logger.error(f"数据库操作失败: {str(e)}")
        return jsonify({'error': 'Database error'}), 500

    with app.app_context():
        db.create_all()
        logger.info("数据库初始化完成")

    if app.config['SCHEDULER_ENABLED']:
        from scheduler import init_scheduler
        init_scheduler(app)

    return app


if __name__ == '__main__':
    app = create_app()
    logger.info(f"服务启动于 {app.config['HOST']}:{app.config['PORT']}")
    serve(app, host=app.config['HOST'], port=app.config['PORT'], threads=app.config['THREADS'])

"""路由模块"""
from .auth import auth_bp
from .traffic import traffic_bp

__all__ = ['auth_bp', 'traffic_bp']

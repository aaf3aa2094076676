"""工具函数"""
from .auth import (
    generate_token,
    verify_token,
    parse_proxy_auth
)
from .decorators import admin_required

__all__ = [
    'generate_token',
    'verify_token',
    'parse_proxy_auth',
    'admin_required',
]

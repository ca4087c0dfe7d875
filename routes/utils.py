"""
路由工具模块
提供JWT认证装饰器、角色校验装饰器和请求解析等通用功能
"""
import logging
from datetime import datetime
from functools import wraps
import jwt
from flask import request, jsonify, current_app
from db.connect import get_db
from db import queries

logger = logging.getLogger(__name__)

# 各角色的首页
DASHBOARDS = {
    'teacher': '/teacher/dashboard',
    'student': '/student/dashboard',
}


def extract_token():
    """
    从请求头中提取JWT令牌
    格式：Authorization: Bearer <token>

    Returns:
        str或None
    """
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def token_required(f):
    """
    JWT认证装饰器
    用于保护需要登录才能访问的路由

    功能：
    1. 从请求头中提取JWT令牌
    2. 验证令牌的有效性（是否过期、是否被篡改）
    3. 验证用户是否存在于数据库中
    4. 将用户资料传递给被装饰的函数

    使用方式：
        @token_required
        def my_route(current_user):
            # current_user 包含用户资料（id, email, full_name, role）
            pass
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = extract_token()
        if not token:
            return jsonify({'success': False, 'message': '令牌缺失！'}), 401

        try:
            payload = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=["HS256"])
            user_data = payload['user']

            # 用户必须仍然存在且角色未变
            db = get_db()
            cursor = db.cursor()
            try:
                current_user = queries.get_profile(cursor, user_data['id'])
            finally:
                cursor.close()

            if not current_user or current_user['role'] != user_data['role']:
                return jsonify({'success': False, 'message': '令牌无效，用户不存在！'}), 401

        except jwt.ExpiredSignatureError:
            return jsonify({'success': False, 'message': '令牌已过期！'}), 401
        except (jwt.InvalidTokenError, KeyError):
            return jsonify({'success': False, 'message': '无效的令牌！'}), 401
        except Exception as e:
            logger.error("Authentication failed: %s", e)
            return jsonify({'success': False, 'message': f'认证失败：{str(e)}'}), 500

        return f(current_user, *args, **kwargs)

    return decorated


def role_required(role):
    """
    角色校验装饰器，必须放在token_required之后

    角色不匹配时返回403，并在redirect字段中给出该用户自己的首页
    """
    def decorator(f):
        @wraps(f)
        def decorated(current_user, *args, **kwargs):
            if current_user['role'] != role:
                logger.info("Role mismatch: user is %s, route requires %s", current_user['role'], role)
                return jsonify({
                    'success': False,
                    'message': '权限不足',
                    'redirect': DASHBOARDS.get(current_user['role'])
                }), 403
            return f(current_user, *args, **kwargs)
        return decorated
    return decorator


def get_request_data():
    """同时支持JSON和表单两种请求体，返回字典"""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def get_text(data, name):
    """读取文本字段：缺失时为空字符串，非字符串的值转换为字符串"""
    value = data.get(name)
    if value is None:
        return ''
    return value if isinstance(value, str) else str(value)


def get_request_list(name):
    """读取列表参数：表单中重复的字段，或JSON中的数组"""
    if request.is_json:
        value = get_request_data().get(name) or []
        return value if isinstance(value, list) else [value]
    return request.form.getlist(name)


def parse_due_datetime(date_str, time_str):
    """
    合并截止日期和时间

    Args:
        date_str: YYYY-MM-DD
        time_str: HH:MM

    Returns:
        datetime

    异常：
        ValueError: 格式不正确
    """
    return datetime.strptime(f"{date_str.strip()} {time_str.strip()}", "%Y-%m-%d %H:%M")


def is_blank_html(content):
    """编辑器内容为空（空字符串或只有一个空段落）"""
    return not content or not content.strip() or content.strip() == '<p></p>'

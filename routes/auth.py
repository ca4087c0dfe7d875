"""
用户认证路由模块
处理用户注册、登录、令牌刷新、个人资料等认证相关功能
"""
import logging
import datetime
import jwt
from flask import Blueprint, jsonify, request, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from db.connect import get_db
from db import queries
from .utils import token_required, extract_token, get_request_data, get_text, DASHBOARDS

logger = logging.getLogger(__name__)

# 创建认证蓝图
auth_bp = Blueprint('auth', __name__)

ROLES = ('teacher', 'student')


# ==================== 工具函数 ====================
def generate_token(user):
    """
    生成JWT令牌

    Args:
        user: 用户资料字典，包含id、email、role

    Returns:
        str: JWT令牌字符串
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        'exp': now + datetime.timedelta(days=current_app.config['TOKEN_TTL_DAYS']),
        'iat': now,
        'user': {
            'id': user['id'],
            'email': user['email'],
            'role': user['role']
        }
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm='HS256')


def public_profile(profile):
    """返回不包含密码哈希的用户资料，并附带角色标记"""
    data = {k: v for k, v in profile.items() if k != 'password_hash'}
    data['is_teacher'] = profile['role'] == 'teacher'
    data['is_student'] = profile['role'] == 'student'
    return data


# ==================== 用户认证路由 ====================
@auth_bp.route('/register', methods=['POST'])
def register():
    """
    用户注册接口

    功能：
    1. 验证注册信息的完整性和合法性
    2. 检查邮箱是否已被注册（不区分大小写）
    3. 对密码进行哈希加密
    4. 创建用户资料并生成JWT令牌

    请求体：
        {
            "email": "邮箱",
            "password": "密码",
            "role": "student" 或 "teacher",
            "full_name": "姓名（可选）"
        }

    Returns:
        JSON: 注册结果，包含token和用户资料
    """
    data = get_request_data()

    for field in ('email', 'password', 'role'):
        if not get_text(data, field).strip():
            return jsonify({'success': False, 'message': f'缺少必要字段: {field}'}), 400

    if data['role'] not in ROLES:
        return jsonify({'success': False, 'message': '角色必须是student或teacher'}), 400

    email = get_text(data, 'email').strip()
    full_name = get_text(data, 'full_name').strip() or None

    db = get_db()
    cursor = db.cursor()

    try:
        if queries.find_profile_by_email(cursor, email):
            return jsonify({'success': False, 'message': '邮箱已被注册'}), 409

        user_id = queries.insert_profile(
            cursor, email, full_name, generate_password_hash(get_text(data, 'password')), data['role'])
        db.commit()

        profile = queries.get_profile(cursor, user_id)
        logger.info("Registered %s as %s", email, data['role'])

        return jsonify({
            'success': True,
            'message': '注册成功',
            'token': generate_token(profile),
            'user': public_profile(profile),
            'redirect': DASHBOARDS[profile['role']]
        }), 201

    except Exception as e:
        db.rollback()
        logger.error("Registration failed for %s: %s", email, e)
        return jsonify({'success': False, 'message': f'注册失败: {str(e)}'}), 500
    finally:
        cursor.close()


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    用户登录接口

    功能：
    1. 按邮箱查找用户并校验密码（哈希比较）
    2. 生成JWT令牌
    3. 返回该角色对应的首页地址

    请求体：
        {
            "email": "邮箱",
            "password": "密码"
        }

    Returns:
        JSON: 登录结果，包含token和用户资料
    """
    data = get_request_data()

    email = get_text(data, 'email').strip()
    password = get_text(data, 'password')
    if not email or not password:
        return jsonify({'success': False, 'message': '缺少必要字段'}), 400

    db = get_db()
    cursor = db.cursor()

    try:
        user = queries.get_profile_for_login(cursor, email)

        if not user or not check_password_hash(user['password_hash'], password):
            return jsonify({'success': False, 'message': '邮箱或密码不正确'}), 401

        return jsonify({
            'success': True,
            'message': '登录成功',
            'token': generate_token(user),
            'user': public_profile(user),
            'redirect': DASHBOARDS[user['role']]
        })

    except Exception as e:
        logger.error("Login failed: %s", e)
        return jsonify({'success': False, 'message': f'登录失败: {str(e)}'}), 500
    finally:
        cursor.close()


@auth_bp.route('/refresh-token', methods=['POST', 'GET'])
def refresh_token():
    """
    刷新JWT令牌接口

    功能：
    1. 验证旧令牌的签名（即使已过期也允许刷新）
    2. 验证用户是否仍然存在
    3. 生成新的令牌

    Returns:
        JSON: 新的JWT令牌
    """
    token = extract_token()
    if not token:
        return jsonify({'success': False, 'message': '令牌缺失'}), 401

    try:
        # 不验证过期时间，允许过期令牌刷新
        payload = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=["HS256"],
                             options={"verify_exp": False})
        user_data = payload['user']

        db = get_db()
        cursor = db.cursor()
        try:
            user = queries.get_profile(cursor, user_data['id'])
        finally:
            cursor.close()

        if not user or user['role'] != user_data['role']:
            return jsonify({'success': False, 'message': '用户不存在'}), 401

        return jsonify({
            'success': True,
            'token': generate_token(user)
        })

    except (jwt.InvalidTokenError, KeyError):
        return jsonify({'success': False, 'message': '无效的令牌'}), 401
    except Exception as e:
        logger.error("Token refresh failed: %s", e)
        return jsonify({'success': False, 'message': f'刷新令牌失败: {str(e)}'}), 500


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_current_user(current_user):
    """
    获取当前登录用户资料

    Returns:
        JSON: 用户资料，包含 is_teacher / is_student 标记
    """
    return jsonify({
        'success': True,
        'user': public_profile(current_user)
    })


@auth_bp.route('/me', methods=['PATCH'])
@token_required
def update_current_user(current_user):
    """
    更新当前用户资料（目前只允许修改姓名）

    请求体：
        {
            "full_name": "新的姓名"
        }
    """
    data = get_request_data()
    if 'full_name' not in data:
        return jsonify({'success': False, 'message': '缺少必要字段: full_name'}), 400

    full_name = get_text(data, 'full_name').strip() or None

    db = get_db()
    cursor = db.cursor()

    try:
        queries.update_profile_name(cursor, current_user['id'], full_name)
        db.commit()
        profile = queries.get_profile(cursor, current_user['id'])
        return jsonify({
            'success': True,
            'message': '资料已更新',
            'user': public_profile(profile)
        })
    except Exception as e:
        db.rollback()
        logger.error("Profile update failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'更新失败: {str(e)}'}), 500
    finally:
        cursor.close()

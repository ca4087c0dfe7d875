"""
Flask应用主文件
负责初始化应用、配置日志、附件下载路由和注册蓝图
"""
import logging
from flask import Flask, send_from_directory, jsonify, abort
from flask_cors import CORS
from config import Config
from db.connect import init_app
from core import storage

# ==================== 日志配置 ====================
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ==================== Flask应用初始化 ====================
# 创建Flask应用实例
app = Flask(__name__)
# 加载配置类
app.config.from_object(Config)
# 启用CORS跨域支持，允许前端访问后端API
CORS(app)

# 初始化数据库连接
init_app(app)


# ==================== 文件服务路由 ====================
@app.route('/files/<bucket>/<filename>')
def stored_file(bucket, filename):
    """
    附件访问路由
    提供作业附件和提交附件的下载

    Args:
        bucket: assignment-files 或 submission-files
        filename: 存储的文件名

    Returns:
        文件内容
    """
    if bucket not in storage.BUCKETS:
        abort(404)
    return send_from_directory(storage.bucket_path(bucket), filename)


@app.route('/api/health')
def health():
    return jsonify({'success': True, 'status': 'ok'})


# ==================== 错误处理 ====================
@app.errorhandler(404)
def not_found(e):
    return jsonify({'success': False, 'message': '资源不存在'}), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'success': False, 'message': '不支持的请求方法'}), 405


@app.errorhandler(500)
def internal_error(e):
    logger.error("Unhandled error: %s", e)
    return jsonify({'success': False, 'message': '服务器内部错误'}), 500


# ==================== 注册蓝图 ====================
# auth_bp: 用户认证相关路由（注册、登录、令牌刷新、个人资料）
# teacher_bp: 教师功能相关路由（名单管理、作业管理、批改、仪表盘）
# student_bp: 学生功能相关路由（查看作业、提交作业、讨论区、查看成绩）
from routes.auth import auth_bp
from routes.teacher import teacher_bp
from routes.student import student_bp

# 注册认证蓝图，URL前缀为 /api/auth
app.register_blueprint(auth_bp, url_prefix='/api/auth')
# 注册教师蓝图，URL前缀为 /api/teacher
app.register_blueprint(teacher_bp, url_prefix='/api/teacher')
# 注册学生蓝图，URL前缀为 /api/student
app.register_blueprint(student_bp, url_prefix='/api/student')


if __name__ == '__main__':
    # 开发模式运行，开启调试模式
    app.run(debug=True)

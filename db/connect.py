"""
数据库连接模块
每个请求使用一个PyMySQL连接（保存在Flask的g对象中），请求结束时关闭
"""
import os
import logging
import pymysql
from pymysql.cursors import DictCursor
from flask import g
from config import Config

logger = logging.getLogger(__name__)

SCHEMA_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'schema.sql')


def get_db():
    """
    获取当前请求的数据库连接

    同一个请求中多次调用返回同一个连接；查询结果为字典（DictCursor）

    Returns:
        pymysql.connections.Connection: 数据库连接对象
    """
    if 'db' not in g:
        g.db = pymysql.connect(
            host=Config.MYSQL_HOST,
            port=Config.MYSQL_PORT,
            user=Config.MYSQL_USER,
            password=Config.MYSQL_PASSWORD,
            db=Config.MYSQL_DB,
            charset='utf8mb4',
            cursorclass=DictCursor
        )
    return g.db


def close_db(e=None):
    """请求结束时关闭连接（由teardown_appcontext调用）"""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db():
    """执行 schema.sql 创建所有数据表（已存在的表不受影响）"""
    with open(SCHEMA_FILE, encoding='utf-8') as f:
        statements = [s.strip() for s in f.read().split(';')]

    db = get_db()
    cursor = db.cursor()
    try:
        for statement in statements:
            if statement:
                cursor.execute(statement)
        db.commit()
    finally:
        cursor.close()
    logger.info("Database schema applied from %s", SCHEMA_FILE)


def init_app(app):
    """
    注册连接清理函数和 flask init-db 命令

    Args:
        app: Flask应用实例
    """
    app.teardown_appcontext(close_db)

    @app.cli.command('init-db')
    def init_db_command():
        """创建数据表"""
        init_db()
        print('数据库初始化完成')

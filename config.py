"""
应用配置文件
包含数据库连接配置、密钥配置和文件存储配置
"""
import os
from dotenv import load_dotenv

# 加载环境变量（从.env文件读取配置）
load_dotenv()


class Config:
    """
    应用配置类
    存储数据库连接信息、密钥、文件存储等配置项，均可通过环境变量覆盖
    """
    # JWT令牌加密密钥，优先使用环境变量，否则使用默认开发密钥
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-key-for-development'
    # 令牌有效期（天）
    TOKEN_TTL_DAYS = int(os.environ.get('TOKEN_TTL_DAYS', 1))

    # MySQL数据库连接配置
    MYSQL_HOST = os.environ.get('MYSQL_HOST', 'localhost')  # 数据库主机地址
    MYSQL_PORT = int(os.environ.get('MYSQL_PORT', 3306))  # 数据库端口
    MYSQL_USER = os.environ.get('MYSQL_USER', 'root')  # 数据库用户名
    MYSQL_PASSWORD = os.environ.get('MYSQL_PASSWORD', '')  # 数据库密码
    MYSQL_DB = os.environ.get('MYSQL_DB', 'classflow')  # 数据库名称

    # 附件存储根目录，每个bucket是其中的一个子目录
    STORAGE_FOLDER = os.environ.get('STORAGE_FOLDER') or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'storage')
    # 单个附件大小上限（10MB）
    MAX_FILE_SIZE = int(os.environ.get('MAX_FILE_SIZE', 10 * 1024 * 1024))

    # 日志级别
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

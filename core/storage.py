"""
附件存储模块
作业附件和提交附件分别保存在存储目录下的两个bucket子目录中
文件通过 /files/<bucket>/<文件名> 访问
"""
import os
import uuid
import logging
from werkzeug.utils import secure_filename
from config import Config

logger = logging.getLogger(__name__)

ASSIGNMENT_BUCKET = 'assignment-files'
SUBMISSION_BUCKET = 'submission-files'
BUCKETS = (ASSIGNMENT_BUCKET, SUBMISSION_BUCKET)


class StorageError(Exception):
    """附件存储相关错误"""


class FileTooLarge(StorageError):
    """文件超过大小上限"""


def bucket_path(bucket):
    """
    获取bucket对应的目录（不存在时自动创建）

    Args:
        bucket: bucket名称

    Returns:
        str: 目录的绝对路径
    """
    if bucket not in BUCKETS:
        raise StorageError(f'未知的存储位置: {bucket}')
    path = os.path.join(Config.STORAGE_FOLDER, bucket)
    os.makedirs(path, exist_ok=True)
    return path


def _file_size(file_storage):
    stream = file_storage.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def check_size(file_storage):
    """超过大小上限时抛出FileTooLarge"""
    size = _file_size(file_storage)
    if size > Config.MAX_FILE_SIZE:
        raise FileTooLarge(f'{file_storage.filename} 超过大小限制（最大 {Config.MAX_FILE_SIZE // (1024 * 1024)}MB）')
    return size


def save_file(bucket, file_storage, prefix):
    """
    保存上传的文件

    功能：
    1. 检查文件大小
    2. 生成唯一文件名：<prefix>-<uuid>-<安全文件名>
    3. 保存到bucket目录

    Args:
        bucket: bucket名称
        file_storage: werkzeug的FileStorage对象
        prefix: 文件名前缀（作业ID或提交ID）

    Returns:
        dict: file_name（原始文件名）、file_url、file_size、file_type
    """
    size = check_size(file_storage)
    directory = bucket_path(bucket)

    safe_name = secure_filename(file_storage.filename) or 'file'
    stored_name = f"{prefix}-{uuid.uuid4().hex}-{safe_name}"
    file_storage.save(os.path.join(directory, stored_name))
    logger.info("Stored %s (%d bytes) in %s", stored_name, size, bucket)

    return {
        'file_name': file_storage.filename,
        'file_url': f'/files/{bucket}/{stored_name}',
        'file_size': size,
        'file_type': file_storage.mimetype,
    }


def remove_file(file_url):
    """
    删除文件URL对应的存储文件，文件不存在时忽略

    Args:
        file_url: save_file返回的file_url
    """
    parts = (file_url or '').strip('/').split('/')
    if len(parts) != 3 or parts[0] != 'files' or parts[1] not in BUCKETS:
        logger.warning("Ignoring unknown file url: %s", file_url)
        return
    path = os.path.join(bucket_path(parts[1]), secure_filename(parts[2]))
    if os.path.exists(path):
        os.remove(path)
    else:
        logger.warning("Stored file already missing: %s", path)

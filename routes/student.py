"""
学生功能路由模块
处理学生相关的所有功能：仪表盘、查看作业、保存草稿和提交作业、讨论区、查看成绩等
"""
import logging
from datetime import datetime
from flask import Blueprint, jsonify, request
from db.connect import get_db
from db import queries
from core import dashboard
from core import status as st
from core import storage
from .utils import token_required, role_required, get_request_data, get_text, is_blank_html

logger = logging.getLogger(__name__)

# 创建学生功能蓝图
student_bp = Blueprint('student', __name__)


# ==================== 仪表盘 ====================
@student_bp.route('/dashboard', methods=['GET'])
@token_required
@role_required('student')
def get_dashboard(current_user):
    """
    学生仪表盘接口

    功能：
    1. 统计各状态的作业数量和平均分
    2. 计算在同学中的排名（同学为该学生所有教师名单中的学生）
    3. 返回成绩趋势和最近的作业

    Returns:
        JSON: 仪表盘数据
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assigned = queries.get_student_assignments(cursor, current_user['id'])
        submissions = queries.get_student_submissions(cursor, current_user['id'])

        teacher_ids = queries.get_teacher_ids_for_student(cursor, current_user['id'])
        classmate_ids = queries.get_classmate_ids(cursor, teacher_ids)
        classmate_rows = queries.get_graded_rows_for_students(cursor, classmate_ids)

        data = dashboard.student_dashboard(
            assigned, submissions, classmate_rows, len(classmate_ids), datetime.now())
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Student dashboard failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取仪表盘数据失败：{str(e)}'}), 500
    finally:
        cursor.close()


# ==================== 作业查看路由 ====================
@student_bp.route('/assignments', methods=['GET'])
@token_required
@role_required('student')
def get_assignments(current_user):
    """
    获取学生被分配的所有作业

    查询参数：
        search: 标题、描述或教师姓名关键字
        status: all / pending / draft / submitted / graded / overdue / locked

    Returns:
        JSON: 作业列表和各状态数量
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assigned = queries.get_student_assignments(cursor, current_user['id'])
        submissions = queries.get_student_submissions(cursor, current_user['id'])
        teachers = queries.get_profiles(cursor, {a['teacher_id'] for a in assigned})
        teacher_names = {t['id']: dashboard.display_name(t, 'Unknown Teacher') for t in teachers}

        data = dashboard.student_assignment_list(
            assigned, submissions, teacher_names, datetime.now(),
            search=request.args.get('search', ''),
            status=request.args.get('status', 'all'))
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Loading assignments failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取作业失败：{str(e)}'}), 500
    finally:
        cursor.close()


@student_bp.route('/assignments/<int:assignment_id>', methods=['GET'])
@token_required
@role_required('student')
def get_assignment_detail(current_user, assignment_id):
    """
    获取作业详情

    功能：
    1. 验证作业是否分配给了当前学生
    2. 返回作业内容、教师附件、自己的提交和附件、讨论区评论
    3. 把作业标记为已查看

    Returns:
        JSON: 作业详情，包含显示状态和 can_edit
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assignment = queries.get_assignment(cursor, assignment_id)
        if not assignment:
            return jsonify({'success': False, 'message': '作业不存在'}), 404
        if not queries.is_assigned(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '该作业没有分配给你'}), 403

        teachers = queries.get_profiles(cursor, [assignment['teacher_id']])
        submission = queries.get_student_submission(cursor, assignment_id, current_user['id'])
        submission_attachments = queries.get_submission_attachments(cursor, [submission['id']]) if submission else []

        queries.mark_assignment_seen(cursor, assignment_id, current_user['id'])
        db.commit()

        return jsonify({
            'success': True,
            'assignment': {
                **assignment,
                'teacher_name': dashboard.display_name(teachers[0] if teachers else None, 'Unknown Teacher'),
                'attachments': queries.get_assignment_attachments(cursor, assignment_id)
            },
            'submission': {**submission, 'attachments': submission_attachments} if submission else None,
            'comments': queries.get_comments(cursor, assignment_id),
            'status': st.student_assignment_status(assignment, submission, datetime.now()),
            'can_edit': st.can_edit_submission(assignment, submission)
        })
    except Exception as e:
        db.rollback()
        logger.error("Loading assignment %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': f'获取作业详情失败：{str(e)}'}), 500
    finally:
        cursor.close()


# ==================== 作业提交路由 ====================
def save_submission(current_user, assignment_id, submit):
    """
    保存草稿或正式提交

    功能：
    1. 验证作业分配给了当前学生，且仍可编辑（作业未关闭、尚未正式提交）
    2. 校验内容不能为空
    3. 创建或更新提交记录，正式提交时写入submitted_at
    4. 保存上传的附件

    Args:
        current_user: 当前学生
        assignment_id: 作业ID
        submit: True表示正式提交，False表示保存草稿
    """
    data = get_request_data()
    content = get_text(data, 'content')
    if is_blank_html(content):
        return jsonify({'success': False, 'message': '作业内容不能为空'}), 400

    files = [f for f in request.files.getlist('files') if f and f.filename]
    try:
        for f in files:
            storage.check_size(f)
    except storage.FileTooLarge as e:
        return jsonify({'success': False, 'message': str(e)}), 400

    db = get_db()
    cursor = db.cursor()
    saved = []

    try:
        assignment = queries.get_assignment(cursor, assignment_id)
        if not assignment:
            return jsonify({'success': False, 'message': '作业不存在'}), 404
        if not queries.is_assigned(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '该作业没有分配给你'}), 403

        submission = queries.get_student_submission(cursor, assignment_id, current_user['id'])
        if not st.can_edit_submission(assignment, submission):
            return jsonify({'success': False, 'message': '作业已关闭或已提交，不能再修改'}), 403

        submitted_at = datetime.now() if submit else None
        if submission:
            submission_id = submission['id']
            queries.update_submission_content(cursor, submission_id, content, submitted_at)
        else:
            submission_id = queries.insert_submission(
                cursor, assignment_id, current_user['id'], content, submitted_at)

        for f in files:
            file_info = storage.save_file(storage.SUBMISSION_BUCKET, f, submission_id)
            saved.append(file_info['file_url'])
            queries.insert_submission_attachment(cursor, submission_id, file_info)

        db.commit()
        logger.info("Student %s %s assignment %s", current_user['id'],
                    'submitted' if submit else 'saved draft for', assignment_id)

        return jsonify({
            'success': True,
            'message': '作业提交成功' if submit else '草稿已保存',
            'submission': queries.get_student_submission(cursor, assignment_id, current_user['id'])
        })
    except Exception as e:
        db.rollback()
        for url in saved:
            storage.remove_file(url)
        logger.error("Saving submission for %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': f'保存失败：{str(e)}'}), 500
    finally:
        cursor.close()


@student_bp.route('/assignments/<int:assignment_id>/draft', methods=['POST'])
@token_required
@role_required('student')
def save_draft(current_user, assignment_id):
    """保存草稿（不提交）"""
    return save_submission(current_user, assignment_id, submit=False)


@student_bp.route('/assignments/<int:assignment_id>/submit', methods=['POST'])
@token_required
@role_required('student')
def submit_assignment(current_user, assignment_id):
    """正式提交作业，提交后不能再修改"""
    return save_submission(current_user, assignment_id, submit=True)


@student_bp.route('/submission-attachments/<int:attachment_id>', methods=['DELETE'])
@token_required
@role_required('student')
def delete_submission_attachment(current_user, attachment_id):
    """
    删除自己提交中的附件（提交必须仍可编辑）
    """
    db = get_db()
    cursor = db.cursor()

    try:
        attachment = queries.get_submission_attachment(cursor, attachment_id)
        submission = queries.get_submission(cursor, attachment['submission_id']) if attachment else None
        if not submission or submission['student_id'] != current_user['id']:
            return jsonify({'success': False, 'message': '附件不存在'}), 404

        assignment = queries.get_assignment(cursor, submission['assignment_id'])
        if not st.can_edit_submission(assignment, submission):
            return jsonify({'success': False, 'message': '作业已关闭或已提交，不能再修改'}), 403

        queries.delete_submission_attachment(cursor, attachment_id)
        db.commit()
        storage.remove_file(attachment['file_url'])
        return jsonify({'success': True, 'message': '附件已删除'})
    except Exception as e:
        db.rollback()
        logger.error("Deleting submission attachment %s failed: %s", attachment_id, e)
        return jsonify({'success': False, 'message': '删除附件失败'}), 500
    finally:
        cursor.close()


# ==================== 讨论区 ====================
@student_bp.route('/assignments/<int:assignment_id>/comments', methods=['POST'])
@token_required
@role_required('student')
def post_comment(current_user, assignment_id):
    """在作业讨论区发表评论"""
    message = get_text(get_request_data(), 'message').strip()
    if not message:
        return jsonify({'success': False, 'message': '评论内容不能为空'}), 400

    db = get_db()
    cursor = db.cursor()

    try:
        if not queries.is_assigned(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '该作业没有分配给你'}), 403

        comment_id = queries.insert_comment(cursor, assignment_id, current_user['id'], message)
        db.commit()
        return jsonify({'success': True, 'comment': queries.get_comment(cursor, comment_id)}), 201
    except Exception as e:
        db.rollback()
        logger.error("Posting comment on %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': '发表评论失败'}), 500
    finally:
        cursor.close()


# ==================== 成绩路由 ====================
@student_bp.route('/grades', methods=['GET'])
@token_required
@role_required('student')
def get_grades(current_user):
    """
    获取学生的所有成绩

    Returns:
        JSON: 已评分的作业列表（评语去除HTML）和成绩统计
    """
    db = get_db()
    cursor = db.cursor()

    try:
        rows = queries.get_student_grade_rows(cursor, current_user['id'])
        return jsonify({'success': True, **dashboard.student_grades(rows)})
    except Exception as e:
        logger.error("Loading grades failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取成绩失败：{str(e)}'}), 500
    finally:
        cursor.close()

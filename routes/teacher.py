"""
教师功能路由模块
处理教师相关的所有功能：仪表盘、学生名单、发布和管理作业、批改作业、作业讨论等
"""
import logging
from datetime import datetime
from flask import Blueprint, jsonify, request
from db.connect import get_db
from db import queries
from core import dashboard
from core import status as st
from core import storage
from core.grades import parse_grade
from .utils import (token_required, role_required, get_request_data, get_request_list, get_text,
                    parse_due_datetime, is_blank_html)

logger = logging.getLogger(__name__)

# 创建教师功能蓝图
teacher_bp = Blueprint('teacher', __name__)


# ==================== 工具函数 ====================
def _uploaded_files():
    """请求中上传的文件（忽略空文件名）"""
    return [f for f in request.files.getlist('files') if f and f.filename]


def read_assignment_form(cursor, teacher_id):
    """
    读取并校验作业表单

    校验顺序：标题、截止日期、截止时间、作业描述、至少选择一个学生、学生必须在名单中、附件大小

    Returns:
        tuple: (作业字段字典, None) 或 (None, 错误信息)
    """
    data = get_request_data()

    title = get_text(data, 'title').strip()
    if not title:
        return None, '请输入作业标题'
    due_date = get_text(data, 'due_date').strip()
    if not due_date:
        return None, '请选择截止日期'
    due_time = get_text(data, 'due_time').strip()
    if not due_time:
        return None, '请选择截止时间'
    try:
        due = parse_due_datetime(due_date, due_time)
    except ValueError:
        return None, '截止日期或时间格式不正确'

    description = get_text(data, 'description')
    if is_blank_html(description):
        return None, '请输入作业描述'

    try:
        student_ids = sorted({int(sid) for sid in get_request_list('student_ids')})
    except (TypeError, ValueError):
        return None, '学生ID格式不正确'
    if not student_ids:
        return None, '请至少选择一个学生'

    roster_ids = set(queries.get_roster_student_ids(cursor, teacher_id))
    if not set(student_ids) <= roster_ids:
        return None, '只能把作业分配给名单中的学生'

    files = _uploaded_files()
    try:
        for f in files:
            storage.check_size(f)
    except storage.FileTooLarge as e:
        return None, str(e)

    is_draft = str(data.get('is_draft', '')).lower() in ('1', 'true', 'yes', 'on')
    return {
        'title': title,
        'description': description,
        'due_date': due,
        'status': st.ASSIGNMENT_DRAFT if is_draft else st.ASSIGNMENT_ACTIVE,
        'student_ids': student_ids,
        'files': files,
    }, None


def store_assignment_files(cursor, assignment_id, files):
    """保存作业附件并写入附件记录，返回已保存文件的URL列表"""
    saved = []
    for f in files:
        file_info = storage.save_file(storage.ASSIGNMENT_BUCKET, f, assignment_id)
        saved.append(file_info['file_url'])
        queries.insert_assignment_attachment(cursor, assignment_id, file_info)
    return saved


def _discard_files(urls):
    for url in urls:
        storage.remove_file(url)


# ==================== 仪表盘 ====================
@teacher_bp.route('/dashboard', methods=['GET'])
@token_required
@role_required('teacher')
def get_dashboard(current_user):
    """
    教师仪表盘接口

    功能：
    1. 查询名单、作业、分配记录、提交和最新评论
    2. 计算统计卡片、提交趋势、成绩分布、完成率
    3. 找出优秀学生和需要关注的学生
    4. 生成最近动态和即将截止的作业

    Returns:
        JSON: 仪表盘数据
    """
    db = get_db()
    cursor = db.cursor()

    try:
        student_ids = queries.get_roster_student_ids(cursor, current_user['id'])
        assignments = queries.get_teacher_assignments(cursor, current_user['id'])
        assignment_ids = [a['id'] for a in assignments]
        assignment_students = queries.get_assignment_students_for(cursor, assignment_ids)
        submissions = queries.get_submissions_for_assignments(cursor, assignment_ids)
        recent_comments = queries.get_recent_comments(cursor, assignment_ids, current_user['id'])

        # 名单学生、提交者和评论者的资料一次查出
        profile_ids = set(student_ids) | {s['student_id'] for s in submissions} | \
            {c['user_id'] for c in recent_comments}
        profiles = {p['id']: p for p in queries.get_profiles(cursor, profile_ids)}

        data = dashboard.teacher_dashboard(
            student_ids, assignments, assignment_students, submissions,
            profiles, recent_comments, datetime.now())
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Teacher dashboard failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取仪表盘数据失败：{str(e)}'}), 500
    finally:
        cursor.close()


# ==================== 学生名单路由 ====================
@teacher_bp.route('/students', methods=['GET'])
@token_required
@role_required('teacher')
def get_students(current_user):
    """
    获取教师名单中的学生及统计

    查询参数：
        search: 姓名或邮箱关键字
        filter: all / top / attention

    Returns:
        JSON: 学生列表和汇总统计
    """
    db = get_db()
    cursor = db.cursor()

    try:
        students = queries.get_roster(cursor, current_user['id'])
        assignment_ids = [a['id'] for a in queries.get_teacher_assignments(cursor, current_user['id'])]
        assignment_students = queries.get_assignment_students_for(cursor, assignment_ids)
        submissions = queries.get_submissions_for_assignments(cursor, assignment_ids)

        data = dashboard.roster(
            students, assignment_students, submissions,
            search=request.args.get('search', ''),
            filter_by=request.args.get('filter', 'all'))
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Loading roster failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取学生名单失败：{str(e)}'}), 500
    finally:
        cursor.close()


@teacher_bp.route('/students', methods=['POST'])
@token_required
@role_required('teacher')
def add_student(current_user):
    """
    按邮箱把学生加入名单

    请求体：
        {
            "email": "学生邮箱（不区分大小写）"
        }

    Returns:
        JSON: 加入结果
    """
    data = get_request_data()
    email = get_text(data, 'email').strip()
    if not email:
        return jsonify({'success': False, 'message': '请提供学生邮箱'}), 400

    db = get_db()
    cursor = db.cursor()

    try:
        student = queries.find_profile_by_email(cursor, email)
        if not student:
            return jsonify({'success': False, 'message': f'没有找到邮箱为 {email} 的学生'}), 404
        if student['role'] != 'student':
            return jsonify({'success': False, 'message': '该用户不是学生'}), 400
        if queries.roster_link_exists(cursor, current_user['id'], student['id']):
            return jsonify({'success': False, 'message': '该学生已在您的名单中'}), 409

        queries.add_roster_student(cursor, current_user['id'], student['id'])
        db.commit()
        logger.info("Teacher %s added student %s", current_user['id'], student['id'])

        return jsonify({
            'success': True,
            'message': '学生已加入名单',
            'student': {'id': student['id'], 'email': student['email'], 'full_name': student['full_name']}
        }), 201
    except Exception as e:
        db.rollback()
        logger.error("Adding student failed: %s", e)
        return jsonify({'success': False, 'message': f'添加失败：{str(e)}'}), 500
    finally:
        cursor.close()


@teacher_bp.route('/students/<int:student_id>', methods=['DELETE'])
@token_required
@role_required('teacher')
def remove_student(current_user, student_id):
    """
    从名单中移除学生

    Args:
        student_id: 学生ID

    Returns:
        JSON: 移除结果
    """
    db = get_db()
    cursor = db.cursor()

    try:
        if not queries.remove_roster_student(cursor, current_user['id'], student_id):
            return jsonify({'success': False, 'message': '该学生不在您的名单中'}), 404
        db.commit()
        return jsonify({'success': True, 'message': '学生已从名单中移除'})
    except Exception as e:
        db.rollback()
        logger.error("Removing student %s failed: %s", student_id, e)
        return jsonify({'success': False, 'message': f'移除失败：{str(e)}'}), 500
    finally:
        cursor.close()


# ==================== 作业管理路由 ====================
@teacher_bp.route('/assignments', methods=['GET'])
@token_required
@role_required('teacher')
def get_assignments(current_user):
    """
    获取教师发布的所有作业及提交统计

    查询参数：
        search: 标题或描述关键字
        status: all / active / draft / closed / overdue

    Returns:
        JSON: 作业列表和各状态数量
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assignments = queries.get_teacher_assignments(cursor, current_user['id'])
        assignment_ids = [a['id'] for a in assignments]
        assignment_students = queries.get_assignment_students_for(cursor, assignment_ids)
        submissions = queries.get_submissions_for_assignments(cursor, assignment_ids)

        data = dashboard.teacher_assignment_list(
            assignments, assignment_students, submissions, datetime.now(),
            search=request.args.get('search', ''),
            status=request.args.get('status', 'all'))
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Loading assignments failed for %s: %s", current_user['id'], e)
        return jsonify({'success': False, 'message': f'获取作业失败：{str(e)}'}), 500
    finally:
        cursor.close()


@teacher_bp.route('/assignments', methods=['POST'])
@token_required
@role_required('teacher')
def create_assignment(current_user):
    """
    发布新作业接口

    功能：
    1. 校验表单（标题、截止时间、描述、学生、附件大小）
    2. 创建作业记录（草稿或进行中）
    3. 把作业分配给选中的学生（状态为unseen）
    4. 保存附件

    请求方式：
        POST (multipart/form-data 或 JSON)

    请求参数：
        - title, description, due_date (YYYY-MM-DD), due_time (HH:MM)
        - student_ids: 学生ID（可重复）
        - is_draft: 是否保存为草稿
        - files: 附件（可重复）

    Returns:
        JSON: 创建的作业
    """
    db = get_db()
    cursor = db.cursor()
    saved = []

    try:
        form, error = read_assignment_form(cursor, current_user['id'])
        if error:
            return jsonify({'success': False, 'message': error}), 400

        assignment_id = queries.insert_assignment(
            cursor, current_user['id'], form['title'], form['description'],
            form['due_date'], form['status'])
        queries.replace_assignment_students(cursor, assignment_id, form['student_ids'])
        saved = store_assignment_files(cursor, assignment_id, form['files'])
        db.commit()
        logger.info("Assignment %s created by %s (%s)", assignment_id, current_user['id'], form['status'])

        return jsonify({
            'success': True,
            'message': '作业已保存为草稿' if form['status'] == st.ASSIGNMENT_DRAFT else '作业发布成功',
            'assignment': queries.get_assignment(cursor, assignment_id)
        }), 201
    except Exception as e:
        db.rollback()
        _discard_files(saved)
        logger.error("Creating assignment failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
    finally:
        cursor.close()


@teacher_bp.route('/assignments/<int:assignment_id>', methods=['GET'])
@token_required
@role_required('teacher')
def get_assignment(current_user, assignment_id):
    """
    获取作业详情（用于编辑）

    Returns:
        JSON: 作业字段、已分配的学生ID、现有附件
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assignment = queries.get_teacher_assignment(cursor, assignment_id, current_user['id'])
        if not assignment:
            return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404

        return jsonify({
            'success': True,
            'assignment': assignment,
            'student_ids': queries.get_assignment_student_ids(cursor, assignment_id),
            'attachments': queries.get_assignment_attachments(cursor, assignment_id)
        })
    finally:
        cursor.close()


@teacher_bp.route('/assignments/<int:assignment_id>', methods=['PUT'])
@token_required
@role_required('teacher')
def update_assignment(current_user, assignment_id):
    """
    编辑作业接口

    功能：
    1. 已关闭的作业不能编辑
    2. 更新作业字段和状态
    3. 重新设置分配的学生（先删除旧记录再插入）
    4. 追加新上传的附件

    Returns:
        JSON: 更新后的作业
    """
    db = get_db()
    cursor = db.cursor()
    saved = []

    try:
        assignment = queries.get_teacher_assignment(cursor, assignment_id, current_user['id'])
        if not assignment:
            return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404
        if assignment['status'] == st.ASSIGNMENT_CLOSED:
            return jsonify({'success': False, 'message': '已关闭的作业不能编辑'}), 403

        form, error = read_assignment_form(cursor, current_user['id'])
        if error:
            return jsonify({'success': False, 'message': error}), 400

        queries.update_assignment(
            cursor, assignment_id, form['title'], form['description'],
            form['due_date'], form['status'])
        queries.replace_assignment_students(cursor, assignment_id, form['student_ids'])
        saved = store_assignment_files(cursor, assignment_id, form['files'])
        db.commit()
        logger.info("Assignment %s updated (%s)", assignment_id, form['status'])

        return jsonify({
            'success': True,
            'message': '作业已更新',
            'assignment': queries.get_assignment(cursor, assignment_id)
        })
    except Exception as e:
        db.rollback()
        _discard_files(saved)
        logger.error("Updating assignment %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': str(e)}), 500
    finally:
        cursor.close()


@teacher_bp.route('/assignments/<int:assignment_id>', methods=['DELETE'])
@token_required
@role_required('teacher')
def delete_assignment(current_user, assignment_id):
    """
    删除作业接口

    功能：
    1. 验证作业是否属于当前教师
    2. 删除作业及所有提交、评论、分配记录和附件记录
    3. 删除存储中的附件文件
    4. 警告：此操作不可恢复

    Returns:
        JSON: 删除结果
    """
    db = get_db()
    cursor = db.cursor()

    try:
        if not queries.get_teacher_assignment(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '作业不存在或无权限删除'}), 404

        file_urls = [a['file_url'] for a in queries.get_assignment_attachments(cursor, assignment_id)]
        file_urls += [a['file_url'] for a in queries.get_submission_attachments_for_assignment(cursor, assignment_id)]

        queries.delete_assignment(cursor, assignment_id)
        db.commit()
        _discard_files(file_urls)
        logger.info("Assignment %s deleted by %s", assignment_id, current_user['id'])

        return jsonify({'success': True, 'message': '作业已删除'})
    except Exception as e:
        db.rollback()
        logger.error("Deleting assignment %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': f'删除失败：{str(e)}'}), 500
    finally:
        cursor.close()


def _change_status(current_user, assignment_id, allowed_from, new_status, message):
    db = get_db()
    cursor = db.cursor()

    try:
        assignment = queries.get_teacher_assignment(cursor, assignment_id, current_user['id'])
        if not assignment:
            return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404
        if assignment['status'] not in allowed_from:
            return jsonify({'success': False, 'message': f'当前状态（{assignment["status"]}）不能执行此操作'}), 400

        queries.set_assignment_status(cursor, assignment_id, new_status)
        db.commit()
        logger.info("Assignment %s status %s -> %s", assignment_id, assignment['status'], new_status)
        return jsonify({'success': True, 'message': message, 'status': new_status})
    except Exception as e:
        db.rollback()
        logger.error("Changing status of assignment %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': str(e)}), 500
    finally:
        cursor.close()


@teacher_bp.route('/assignments/<int:assignment_id>/close', methods=['POST'])
@token_required
@role_required('teacher')
def close_submissions(current_user, assignment_id):
    """
    关闭提交：学生不能再提交或编辑，未提交的学生显示为locked
    """
    return _change_status(current_user, assignment_id, (st.ASSIGNMENT_ACTIVE,),
                          st.ASSIGNMENT_CLOSED, '已关闭提交')


@teacher_bp.route('/assignments/<int:assignment_id>/reopen', methods=['POST'])
@token_required
@role_required('teacher')
def reopen_submissions(current_user, assignment_id):
    """
    重新开放提交：作业状态恢复为active
    """
    return _change_status(current_user, assignment_id, (st.ASSIGNMENT_CLOSED,),
                          st.ASSIGNMENT_ACTIVE, '已重新开放提交')


@teacher_bp.route('/assignments/<int:assignment_id>/attachments/<int:attachment_id>', methods=['DELETE'])
@token_required
@role_required('teacher')
def delete_assignment_attachment(current_user, assignment_id, attachment_id):
    """
    删除作业附件（同时删除存储中的文件）
    """
    db = get_db()
    cursor = db.cursor()

    try:
        if not queries.get_teacher_assignment(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404
        attachment = queries.get_assignment_attachment(cursor, attachment_id)
        if not attachment or attachment['assignment_id'] != assignment_id:
            return jsonify({'success': False, 'message': '附件不存在'}), 404

        queries.delete_assignment_attachment(cursor, attachment_id)
        db.commit()
        storage.remove_file(attachment['file_url'])
        return jsonify({'success': True, 'message': '附件已删除'})
    except Exception as e:
        db.rollback()
        logger.error("Deleting attachment %s failed: %s", attachment_id, e)
        return jsonify({'success': False, 'message': '删除附件失败'}), 500
    finally:
        cursor.close()


# ==================== 批改相关路由 ====================
@teacher_bp.route('/grading', methods=['GET'])
@token_required
@role_required('teacher')
def get_grading(current_user):
    """
    批改页面数据接口

    功能：
    1. 指定assignment_id时加载该作业，否则加载最近创建的作业
    2. 每个被分配的学生一行，包含提交状态、内容、附件和评分
    3. 附带作业讨论区评论
    4. 默认选中第一份待批改的提交

    查询参数：
        assignment_id: 作业ID（可选）

    Returns:
        JSON: 批改页面数据；教师没有任何作业时 assignment 为 null
    """
    db = get_db()
    cursor = db.cursor()

    try:
        assignment_id = request.args.get('assignment_id', type=int)
        if assignment_id:
            assignment = queries.get_teacher_assignment(cursor, assignment_id, current_user['id'])
            if not assignment:
                return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404
        else:
            assignment = queries.get_latest_assignment(cursor, current_user['id'])
            if not assignment:
                return jsonify({'success': True, 'assignment': None, 'submissions': []})

        student_ids = queries.get_assignment_student_ids(cursor, assignment['id'])
        profiles = {p['id']: p for p in queries.get_profiles(cursor, student_ids)}
        submissions = queries.get_submissions_for_assignments(cursor, [assignment['id']])
        attachments = queries.get_submission_attachments(cursor, [s['id'] for s in submissions])
        comments = queries.get_comments(cursor, assignment['id'])

        data = dashboard.grading_view(assignment, student_ids, profiles, submissions, attachments, comments)
        return jsonify({'success': True, **data})
    except Exception as e:
        logger.error("Loading grading view failed: %s", e)
        return jsonify({'success': False, 'message': f'加载批改数据失败：{str(e)}'}), 500
    finally:
        cursor.close()


@teacher_bp.route('/submissions/<int:submission_id>/grade', methods=['POST'])
@token_required
@role_required('teacher')
def grade_submission(current_user, submission_id):
    """
    批改作业接口

    功能：
    1. 验证提交属于当前教师的作业，且学生已正式提交
    2. 校验分数（0-100，空值表示清除分数）
    3. 更新分数、评语和批改时间

    请求体：
        {
            "grade": 分数（0-100）或空,
            "feedback": "评语（HTML）"
        }

    Returns:
        JSON: 批改结果
    """
    data = get_request_data()
    try:
        grade = parse_grade(data.get('grade'))
    except ValueError as e:
        return jsonify({'success': False, 'message': str(e)}), 400

    db = get_db()
    cursor = db.cursor()

    try:
        submission = queries.get_submission(cursor, submission_id)
        if not submission or not queries.get_teacher_assignment(
                cursor, submission['assignment_id'], current_user['id']):
            return jsonify({'success': False, 'message': '提交不存在或无权访问'}), 404
        if not submission.get('submitted_at'):
            return jsonify({'success': False, 'message': '学生尚未提交，不能批改'}), 400

        feedback = get_text(data, 'feedback') if 'feedback' in data else submission.get('feedback')
        graded_at = datetime.now() if grade is not None else None
        queries.grade_submission(cursor, submission_id, grade, feedback, graded_at)
        db.commit()
        logger.info("Submission %s graded: %s", submission_id, grade)

        return jsonify({
            'success': True,
            'message': '作业批改完成' if grade is not None else '分数已清除',
            'submission': {
                'id': submission_id,
                'grade': grade,
                'feedback': feedback,
                'graded_at': graded_at,
                'status': st.GRADED if grade is not None else st.SUBMITTED
            }
        })
    except Exception as e:
        db.rollback()
        logger.error("Grading submission %s failed: %s", submission_id, e)
        return jsonify({'success': False, 'message': str(e)}), 500
    finally:
        cursor.close()


@teacher_bp.route('/assignments/<int:assignment_id>/comments', methods=['POST'])
@token_required
@role_required('teacher')
def post_comment(current_user, assignment_id):
    """
    在作业讨论区发表评论

    请求体：
        {
            "message": "评论内容"
        }
    """
    message = get_text(get_request_data(), 'message').strip()
    if not message:
        return jsonify({'success': False, 'message': '评论内容不能为空'}), 400

    db = get_db()
    cursor = db.cursor()

    try:
        if not queries.get_teacher_assignment(cursor, assignment_id, current_user['id']):
            return jsonify({'success': False, 'message': '作业不存在或无权访问'}), 404

        comment_id = queries.insert_comment(cursor, assignment_id, current_user['id'], message)
        db.commit()
        return jsonify({'success': True, 'comment': queries.get_comment(cursor, comment_id)}), 201
    except Exception as e:
        db.rollback()
        logger.error("Posting comment on %s failed: %s", assignment_id, e)
        return jsonify({'success': False, 'message': '发表评论失败'}), 500
    finally:
        cursor.close()

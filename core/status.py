"""
作业状态判定模块
根据作业和提交记录推导学生端、教师端和批改页面显示的状态
"""
from datetime import datetime

# 作业本身的状态（存储在assignments表中）
ASSIGNMENT_DRAFT = 'draft'
ASSIGNMENT_ACTIVE = 'active'
ASSIGNMENT_CLOSED = 'closed'

# 显示状态
PENDING = 'pending'
DRAFT = 'draft'
SUBMITTED = 'submitted'
GRADED = 'graded'
OVERDUE = 'overdue'
LOCKED = 'locked'
STUDENT_STATUSES = (PENDING, DRAFT, SUBMITTED, GRADED, OVERDUE, LOCKED)
TEACHER_STATUSES = (ASSIGNMENT_ACTIVE, ASSIGNMENT_DRAFT, ASSIGNMENT_CLOSED, OVERDUE)


def to_datetime(value):
    """将数据库返回的时间或ISO格式字符串统一转换为datetime，None原样返回"""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)


def is_submitted(submission):
    return bool(submission) and submission.get('submitted_at') is not None


def is_graded(submission):
    return bool(submission) and submission.get('grade') is not None


def submission_state(submission):
    """
    提交记录本身的状态（批改页面使用）

    Args:
        submission: 提交记录字典，没有提交时为None

    Returns:
        str: pending / graded / submitted / draft
    """
    if not submission:
        return PENDING
    if is_graded(submission):
        return GRADED
    if is_submitted(submission):
        return SUBMITTED
    return DRAFT


def student_assignment_status(assignment, submission, now):
    """
    学生看到的作业状态

    判定顺序：
    1. 作业已关闭且学生尚未正式提交 -> locked（未提交的草稿同样被锁定）
    2. 有提交记录 -> graded / submitted / draft
    3. 没有提交且已过截止时间 -> overdue
    4. 其他情况 -> pending

    Args:
        assignment: 作业字典，需要 status 和 due_date
        submission: 该学生的提交记录，没有则为None
        now: 当前时间

    Returns:
        str: 显示状态
    """
    if assignment.get('status') == ASSIGNMENT_CLOSED and not is_submitted(submission):
        return LOCKED
    if submission:
        return submission_state(submission)
    due_date = to_datetime(assignment.get('due_date'))
    if due_date is not None and due_date < now:
        return OVERDUE
    return PENDING


def teacher_assignment_status(assignment, now):
    """进行中的作业过了截止时间显示为overdue，其余显示存储的状态"""
    status = assignment.get('status')
    due_date = to_datetime(assignment.get('due_date'))
    if status == ASSIGNMENT_ACTIVE and due_date is not None and due_date < now:
        return OVERDUE
    return status


def can_edit_submission(assignment, submission):
    """作业未关闭且尚未正式提交时，学生可以继续编辑"""
    return assignment.get('status') != ASSIGNMENT_CLOSED and not is_submitted(submission)


def count_by_status(items, statuses, key='status'):
    counts = {status: 0 for status in statuses}
    for item in items:
        if item[key] in counts:
            counts[item[key]] += 1
    return counts

"""
页面数据汇总模块
把路由一次性查询出的作业、提交、名单等数据，整理成各个页面需要的统计结果

说明：
- 这里的函数都是纯函数，不访问数据库
- 当前时间统一由调用方传入now
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from . import grades as gr
from . import status as st
from .status import to_datetime

# 学生仪表盘中显示的最近作业数量
RECENT_ASSIGNMENT_LIMIT = 4
# 成绩趋势图保留的次数
GRADE_TREND_LIMIT = 6
# 教师仪表盘各列表的长度
COMPLETION_LIMIT = 5
TOP_STUDENT_LIMIT = 3
ATTENTION_LIMIT = 3
UPCOMING_LIMIT = 3
RECENT_SUBMISSION_LIMIT = 3
ACTIVITY_LIMIT = 5
TREND_WEEKS = 4
SHORT_TITLE_LENGTH = 12


# ==================== 工具函数 ====================
def submissions_by_assignment(submissions):
    """{assignment_id: submission}，同一作业只保留一条（每个学生每个作业最多一条提交）"""
    return {s['assignment_id']: s for s in submissions}


def display_name(profile, default='Unknown'):
    if not profile:
        return default
    return profile.get('full_name') or profile.get('email') or default


def time_ago(moment, now):
    """
    将时间转换为"多久之前"的描述

    Returns:
        str: 例如 "5 minutes ago"、"1 hour ago"、"3 days ago"
    """
    diff = now - to_datetime(moment)
    minutes = int(diff.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    days = hours // 24
    return f"{days} day{'' if days == 1 else 's'} ago"


def shorten(title, length=SHORT_TITLE_LENGTH):
    return title[:length] + '…' if len(title) > length else title


def percent(part, total):
    if total <= 0:
        return 0
    return int((Decimal(part * 100) / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _matches(search, *fields):
    if not search:
        return True
    needle = search.lower()
    return any(needle in (field or '').lower() for field in fields)


# ==================== 学生端 ====================
def student_dashboard(assigned, submissions, classmate_grade_rows, classmate_count, now):
    """
    学生仪表盘

    Args:
        assigned: 学生被分配的作业列表
        submissions: 学生的所有提交（按更新时间升序）
        classmate_grade_rows: 同学（包括自己）已评分的提交 (student_id, grade)
        classmate_count: 同学总人数（学生所属所有教师名单的并集）
        now: 当前时间

    Returns:
        dict: 统计数据、状态分布、成绩趋势和最近作业
    """
    submission_map = submissions_by_assignment(submissions)
    classified = []
    for assignment in assigned:
        submission = submission_map.get(assignment['id'])
        classified.append({
            'id': assignment['id'],
            'title': assignment['title'],
            'due_date': assignment['due_date'],
            'status': st.student_assignment_status(assignment, submission, now),
            'grade': submission.get('grade') if submission else None,
        })

    counts = st.count_by_status(classified, st.STUDENT_STATUSES)
    completed = counts[st.SUBMITTED] + counts[st.GRADED]

    own_average = gr.average(s['grade'] for s in gr.graded(submissions)) or 0

    # 只有班级里还有其他同学、并且自己已有成绩时才计算排名
    ranking = 1
    if classmate_count > 1 and own_average > 0:
        ranking = gr.class_ranking(own_average, gr.averages_by_student(classmate_grade_rows))

    breakdown = [
        {'name': 'Submitted', 'value': completed},
        {'name': 'Draft', 'value': counts[st.DRAFT]},
        {'name': 'Pending', 'value': counts[st.PENDING]},
        {'name': 'Overdue', 'value': counts[st.OVERDUE]},
        {'name': 'Locked', 'value': counts[st.LOCKED]},
    ]

    return {
        'stats': {
            'total_assignments': len(assigned),
            'completed': completed,
            'pending': counts[st.PENDING],
            'overdue': counts[st.OVERDUE],
            'locked': counts[st.LOCKED],
            'draft': counts[st.DRAFT],
            'average_grade': gr.round1(own_average),
            'ranking': ranking,
            'total_students': classmate_count,
            'better_than_percent': gr.percentile_better_than(ranking, classmate_count),
        },
        'status_breakdown': [item for item in breakdown if item['value'] > 0],
        'grade_trend': gr.grade_trend(submissions, GRADE_TREND_LIMIT),
        'recent_assignments': classified[:RECENT_ASSIGNMENT_LIMIT],
    }


def student_assignment_list(assigned, submissions, teacher_names, now, search='', status='all'):
    """
    学生作业列表

    Args:
        assigned: 学生被分配的作业
        submissions: 学生的提交
        teacher_names: {teacher_id: 教师显示名}
        search: 标题、描述或教师姓名的关键字（不区分大小写）
        status: 状态筛选，all表示不筛选

    Returns:
        dict: assignments（筛选后的列表）和 counts（未筛选的各状态数量）
    """
    submission_map = submissions_by_assignment(submissions)
    rows = []
    for assignment in assigned:
        submission = submission_map.get(assignment['id'])
        rows.append({
            'id': assignment['id'],
            'title': assignment['title'],
            'description': assignment.get('description') or '',
            'due_date': assignment['due_date'],
            'teacher_name': teacher_names.get(assignment.get('teacher_id'), 'Unknown Teacher'),
            'assignment_status': assignment['status'],
            'status': st.student_assignment_status(assignment, submission, now),
            'grade': submission.get('grade') if submission else None,
            'submitted_at': submission.get('submitted_at') if submission else None,
        })

    counts = st.count_by_status(rows, st.STUDENT_STATUSES)
    counts['all'] = len(rows)

    filtered = [
        row for row in rows
        if _matches(search, row['title'], row['description'], row['teacher_name'])
        and (status in (None, '', 'all') or row['status'] == status)
    ]
    return {'assignments': filtered, 'counts': counts}


def student_grades(rows):
    """
    学生成绩页

    Args:
        rows: 已评分的提交，附带作业标题和教师姓名

    Returns:
        dict: grades 列表和 stats 汇总
    """
    grade_rows = []
    for row in rows:
        feedback = gr.strip_html(row.get('feedback')) or 'No feedback provided'
        grade_rows.append({
            'id': row['id'],
            'assignment_id': row['assignment_id'],
            'assignment_title': row.get('assignment_title') or 'Unknown Assignment',
            'teacher_name': row.get('teacher_name') or 'Unknown Teacher',
            'submitted_at': row.get('submitted_at'),
            'graded_at': row.get('graded_at') or row.get('updated_at') or row.get('submitted_at'),
            'grade': row['grade'],
            'feedback': feedback,
        })
    return {
        'grades': grade_rows,
        'stats': gr.grade_summary(g['grade'] for g in grade_rows),
    }


# ==================== 教师端 ====================
def _students_per_assignment(assignment_student_rows):
    result = {}
    for row in assignment_student_rows:
        result.setdefault(row['assignment_id'], set()).add(row['student_id'])
    return result


def _submitted_count(submissions, assignment_id):
    return len([s for s in submissions
                if s['assignment_id'] == assignment_id and st.is_submitted(s)])


def teacher_assignment_list(assignments, assignment_student_rows, submissions, now, search='', status='all'):
    """
    教师作业列表，附带每个作业的提交统计

    Returns:
        dict: assignments（筛选后的列表）和 counts（total/active/draft/closed/overdue）
    """
    students_per_assignment = _students_per_assignment(assignment_student_rows)
    rows = []
    for assignment in assignments:
        total = len(students_per_assignment.get(assignment['id'], ()))
        submitted = _submitted_count(submissions, assignment['id'])
        graded_count = len([s for s in submissions
                            if s['assignment_id'] == assignment['id'] and st.is_graded(s)])
        rows.append({
            'id': assignment['id'],
            'title': assignment['title'],
            'description': assignment.get('description') or '',
            'due_date': assignment['due_date'],
            'status': st.teacher_assignment_status(assignment, now),
            'created_at': assignment.get('created_at'),
            'total_students': total,
            'submitted': submitted,
            'pending': total - submitted,
            'graded': graded_count,
        })

    counts = st.count_by_status(rows, st.TEACHER_STATUSES)
    counts['total'] = len(rows)

    filtered = [
        row for row in rows
        if _matches(search, row['title'], row['description'])
        and (status in (None, '', 'all') or row['status'] == status)
    ]
    return {'assignments': filtered, 'counts': counts}


def grading_view(assignment, student_ids, profiles, submissions, attachments, comments):
    """
    批改页面数据

    每个被分配的学生对应一行；没有提交记录的学生使用 pending-<student_id> 作为占位ID

    Args:
        assignment: 作业
        student_ids: 被分配的学生ID列表
        profiles: {student_id: 用户资料}
        submissions: 该作业的提交
        attachments: 这些提交的附件
        comments: 作业讨论区评论（已附带作者信息）

    Returns:
        dict: assignment 头部统计、submissions 列表、selected 默认选中行、all_graded
    """
    submission_by_student = {s['student_id']: s for s in submissions}
    thread = [
        {
            'id': c['id'],
            'author_name': c.get('author_name') or 'Unknown',
            'role': c.get('author_role') or 'student',
            'message': c['message'],
            'created_at': c['created_at'],
        }
        for c in comments
    ]

    rows = []
    for student_id in student_ids:
        profile = profiles.get(student_id)
        submission = submission_by_student.get(student_id)
        own_attachments = [a for a in attachments
                           if submission and a['submission_id'] == submission['id']]
        rows.append({
            'id': submission['id'] if submission else f'pending-{student_id}',
            'student_id': student_id,
            'student_name': display_name(profile),
            'student_email': (profile or {}).get('email') or '',
            'status': st.submission_state(submission),
            'submitted_at': submission.get('submitted_at') if submission else None,
            'grade': submission.get('grade') if submission else None,
            'feedback': submission.get('feedback') if submission else None,
            'content': submission.get('content') if submission else None,
            'attachments': [
                {
                    'id': a['id'],
                    'file_name': a['file_name'],
                    'file_size': a['file_size'],
                    'file_url': a['file_url'],
                    'file_type': a.get('file_type'),
                }
                for a in own_attachments
            ],
            'comments': thread,
        })

    handed_in = [r for r in rows if r['status'] in (st.SUBMITTED, st.GRADED)]
    graded_count = len([r for r in rows if r['status'] == st.GRADED])
    first_ungraded = next((r for r in rows if r['status'] == st.SUBMITTED), None)

    return {
        'assignment': {
            'id': assignment['id'],
            'title': assignment['title'],
            'due_date': assignment['due_date'],
            'status': assignment['status'],
            'total_students': len(student_ids),
            'submitted': len(handed_in),
            'graded': graded_count,
        },
        'submissions': rows,
        'selected': first_ungraded or (rows[0] if rows else None),
        'all_graded': bool(handed_in) and graded_count == len(handed_in),
    }


def roster(students, assignment_student_rows, submissions, search='', filter_by='all'):
    """
    教师的学生名单及每个学生的统计

    Args:
        students: 名单中的学生（id, email, full_name, added_at）
        assignment_student_rows: 该教师所有作业的分配记录
        submissions: 该教师所有作业的提交
        search: 姓名或邮箱关键字
        filter_by: all / top（平均分>=90）/ attention（平均分<70）

    Returns:
        dict: students 列表和 stats 汇总
    """
    rows = []
    for student in students:
        student_id = student['id']
        own = [s for s in submissions if s['student_id'] == student_id]
        handed_in = [s for s in own if st.is_submitted(s)]
        student_average = gr.average(s['grade'] for s in gr.graded(own))
        last_submitted = max((to_datetime(s['submitted_at']) for s in handed_in), default=None)
        rows.append({
            'id': student_id,
            'name': student.get('full_name') or 'Unknown',
            'email': student.get('email'),
            'joined_date': student.get('added_at'),
            'total_assignments': len([r for r in assignment_student_rows if r['student_id'] == student_id]),
            'submitted': len(handed_in),
            'average_grade': gr.round1(student_average),
            'status': 'active',
            'last_activity': last_submitted or student.get('added_at'),
        })

    with_grades = [r['average_grade'] for r in rows if r['average_grade'] is not None]
    stats = {
        'total_students': len(rows),
        'active_students': len([r for r in rows if r['status'] == 'active']),
        'average_grade': gr.round1(gr.average(with_grades)),
        'top_performers': len([g for g in with_grades if g >= 90]),
        'needs_attention': len([g for g in with_grades if g < 70]),
    }

    def keep(row):
        if not _matches(search, row['name'], row['email']):
            return False
        if filter_by == 'top':
            return row['average_grade'] is not None and row['average_grade'] >= 90
        if filter_by == 'attention':
            return row['average_grade'] is not None and row['average_grade'] < 70
        return True

    return {'students': [r for r in rows if keep(r)], 'stats': stats}


def submission_trend(assignments, submissions, now, weeks=TREND_WEEKS):
    """
    最近几周的按时/迟交提交数量

    每一周是 [开始, 开始+7天) 的区间，最后一周截止于now
    """
    week = timedelta(days=7)
    due_dates = {a['id']: to_datetime(a['due_date']) for a in assignments}
    handed_in = [s for s in submissions if st.is_submitted(s)]
    trend = []
    for i in range(weeks):
        week_start = now - (weeks - i) * week
        week_end = week_start + week
        in_window = [s for s in handed_in
                     if week_start <= to_datetime(s['submitted_at']) < week_end]
        on_time = 0
        for s in in_window:
            due = due_dates.get(s['assignment_id'])
            if due is None or to_datetime(s['submitted_at']) <= due:
                on_time += 1
        trend.append({'week': f'Week {i + 1}', 'on_time': on_time, 'late': len(in_window) - on_time})
    return trend


def student_performance(student_ids, assignments, submissions, profiles):
    """
    教师仪表盘中每个学生的表现：总平均分、最近三次作业平均分、走势、缺交数量
    """
    published = [a for a in assignments if a['status'] != st.ASSIGNMENT_DRAFT]
    last3_ids = {a['id'] for a in sorted(published, key=lambda a: to_datetime(a['due_date']), reverse=True)[:3]}

    result = []
    for student_id in student_ids:
        profile = profiles.get(student_id)
        if not profile:
            continue
        own = [s for s in submissions if s['student_id'] == student_id]
        graded_rows = gr.graded(own)
        overall = gr.average(s['grade'] for s in graded_rows) or 0
        last3_rows = [s for s in graded_rows if s['assignment_id'] in last3_ids]
        last3 = gr.average(s['grade'] for s in last3_rows)
        submitted = len([s for s in own if st.is_submitted(s)])
        result.append({
            'id': student_id,
            'name': display_name(profile),
            'grade': gr.round1(overall),
            'last3_avg': gr.round1(last3),
            'trend': gr.trend_direction(graded_rows, last3, overall, len(last3_rows)),
            'assignments': len(own),
            'missing': max(0, len(published) - submitted),
        })
    return result


def teacher_dashboard(student_ids, assignments, assignment_student_rows, submissions,
                      profiles, recent_comments, now):
    """
    教师仪表盘

    Args:
        student_ids: 名单中的学生ID
        assignments: 教师的所有作业（创建时间倒序）
        assignment_student_rows: 这些作业的分配记录
        submissions: 这些作业的所有提交
        profiles: {user_id: 用户资料}，需要覆盖名单学生、提交者和评论者
        recent_comments: 其他用户最新的评论（时间倒序）
        now: 当前时间

    Returns:
        dict: 统计卡片、提交趋势、成绩分布、完成率、优秀学生、需关注学生、最近动态、即将截止
    """
    graded_subs = gr.graded(submissions)
    class_average = gr.average(s['grade'] for s in graded_subs) or 0
    pending_count = len([s for s in submissions if st.is_submitted(s) and not st.is_graded(s)])

    students_per_assignment = _students_per_assignment(assignment_student_rows)
    titles = {a['id']: a['title'] for a in assignments}

    completion = []
    for assignment in [a for a in assignments if a['status'] != st.ASSIGNMENT_DRAFT][:COMPLETION_LIMIT]:
        total = len(students_per_assignment.get(assignment['id'], ()))
        submitted = _submitted_count(submissions, assignment['id'])
        completion.append({
            'assignment_id': assignment['id'],
            'assignment': shorten(assignment['title']),
            'completion': percent(submitted, total),
        })

    performance = student_performance(student_ids, assignments, submissions, profiles) if student_ids else []
    top_students = sorted([p for p in performance if p['grade'] > 0],
                          key=lambda p: p['grade'], reverse=True)[:TOP_STUDENT_LIMIT]
    needs_attention = sorted([p for p in performance
                              if p['last3_avg'] is not None and p['last3_avg'] < class_average],
                             key=lambda p: p['last3_avg'])[:ATTENTION_LIMIT]
    needs_attention = [dict(p, grade=p['last3_avg']) for p in needs_attention]

    recent_subs = sorted([s for s in submissions if st.is_submitted(s)],
                         key=lambda s: to_datetime(s['submitted_at']), reverse=True)[:RECENT_SUBMISSION_LIMIT]
    activity = [
        {
            'student': display_name(profiles.get(s['student_id']), 'Student'),
            'action': f'Submitted "{titles.get(s["assignment_id"], "an assignment")}"',
            'time': time_ago(s['submitted_at'], now),
            'type': 'submission',
        }
        for s in recent_subs
    ] + [
        {
            'student': display_name(profiles.get(c['user_id']), 'Student'),
            'action': f'Asked a question on "{titles.get(c["assignment_id"], "an assignment")}"',
            'time': time_ago(c['created_at'], now),
            'type': 'question',
        }
        for c in recent_comments
    ]

    upcoming = sorted([a for a in assignments
                       if a['status'] == st.ASSIGNMENT_ACTIVE and to_datetime(a['due_date']) > now],
                      key=lambda a: to_datetime(a['due_date']))[:UPCOMING_LIMIT]
    deadlines = [
        {
            'id': a['id'],
            'title': a['title'],
            'due_date': a['due_date'],
            'submissions': _submitted_count(submissions, a['id']),
            'total': len(students_per_assignment.get(a['id'], ())),
        }
        for a in upcoming
    ]

    return {
        'stats': {
            'total_students': len(student_ids),
            'total_assignments': len(assignments),
            'pending_submissions': pending_count,
            'average_grade': gr.round1(class_average),
        },
        'submission_trend': submission_trend(assignments, submissions, now),
        'grade_distribution': gr.grade_distribution(s['grade'] for s in graded_subs),
        'assignment_completion': completion,
        'top_students': top_students,
        'needs_attention': needs_attention,
        'recent_activity': activity[:ACTIVITY_LIMIT],
        'upcoming_deadlines': deadlines,
    }

"""
数据库查询模块
集中存放路由使用的所有SQL语句
每个函数接收一个已打开的游标，事务的提交和回滚由调用方负责
"""


def _placeholders(values):
    """为IN子句生成占位符，例如 '%s,%s,%s'"""
    return ','.join(['%s'] * len(values))


# ==================== 用户资料 ====================
PROFILE_COLUMNS = "id, email, full_name, role, created_at, updated_at"


def get_profile(cursor, user_id):
    cursor.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE id = %s", (user_id,))
    return cursor.fetchone()


def get_profile_for_login(cursor, email):
    """按邮箱查询用户（包含密码哈希，仅供登录校验使用）"""
    cursor.execute(
        f"SELECT {PROFILE_COLUMNS}, password_hash FROM profiles WHERE LOWER(email) = LOWER(%s)",
        (email,)
    )
    return cursor.fetchone()


def find_profile_by_email(cursor, email):
    """按邮箱查询用户，大小写不敏感"""
    cursor.execute(
        f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE LOWER(email) = LOWER(%s)",
        (email,)
    )
    return cursor.fetchone()


def insert_profile(cursor, email, full_name, password_hash, role):
    cursor.execute(
        """INSERT INTO profiles (email, full_name, password_hash, role, created_at, updated_at)
           VALUES (%s, %s, %s, %s, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)""",
        (email, full_name, password_hash, role)
    )
    return cursor.lastrowid


def update_profile_name(cursor, user_id, full_name):
    cursor.execute(
        "UPDATE profiles SET full_name = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
        (full_name, user_id)
    )


def get_profiles(cursor, user_ids):
    if not user_ids:
        return []
    ids = list(user_ids)
    cursor.execute(
        f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE id IN ({_placeholders(ids)})",
        tuple(ids)
    )
    return cursor.fetchall()


# ==================== 学生名单 ====================
def get_roster(cursor, teacher_id):
    """教师名单中的学生，包含加入时间"""
    cursor.execute(
        """SELECT p.id, p.email, p.full_name, ts.added_at
           FROM teacher_students ts
           JOIN profiles p ON ts.student_id = p.id
           WHERE ts.teacher_id = %s
           ORDER BY ts.added_at DESC""",
        (teacher_id,)
    )
    return cursor.fetchall()


def get_roster_student_ids(cursor, teacher_id):
    cursor.execute(
        "SELECT student_id FROM teacher_students WHERE teacher_id = %s",
        (teacher_id,)
    )
    return [row['student_id'] for row in cursor.fetchall()]


def roster_link_exists(cursor, teacher_id, student_id):
    cursor.execute(
        "SELECT id FROM teacher_students WHERE teacher_id = %s AND student_id = %s",
        (teacher_id, student_id)
    )
    return cursor.fetchone() is not None


def add_roster_student(cursor, teacher_id, student_id):
    cursor.execute(
        "INSERT INTO teacher_students (teacher_id, student_id, added_at) VALUES (%s, %s, CURRENT_TIMESTAMP)",
        (teacher_id, student_id)
    )


def remove_roster_student(cursor, teacher_id, student_id):
    cursor.execute(
        "DELETE FROM teacher_students WHERE teacher_id = %s AND student_id = %s",
        (teacher_id, student_id)
    )
    return cursor.rowcount


def get_teacher_ids_for_student(cursor, student_id):
    cursor.execute(
        "SELECT teacher_id FROM teacher_students WHERE student_id = %s",
        (student_id,)
    )
    return [row['teacher_id'] for row in cursor.fetchall()]


def get_classmate_ids(cursor, teacher_ids):
    """这些教师名单中的所有学生（去重）"""
    if not teacher_ids:
        return []
    ids = list(teacher_ids)
    cursor.execute(
        f"SELECT DISTINCT student_id FROM teacher_students WHERE teacher_id IN ({_placeholders(ids)})",
        tuple(ids)
    )
    return [row['student_id'] for row in cursor.fetchall()]


# ==================== 作业 ====================
ASSIGNMENT_COLUMNS = "id, teacher_id, title, description, due_date, status, created_at, updated_at"


def get_teacher_assignments(cursor, teacher_id):
    """教师发布的所有作业，最新创建的在前"""
    cursor.execute(
        f"SELECT {ASSIGNMENT_COLUMNS} FROM assignments WHERE teacher_id = %s ORDER BY created_at DESC",
        (teacher_id,)
    )
    return cursor.fetchall()


def get_assignment(cursor, assignment_id):
    cursor.execute(
        f"SELECT {ASSIGNMENT_COLUMNS} FROM assignments WHERE id = %s",
        (assignment_id,)
    )
    return cursor.fetchone()


def get_teacher_assignment(cursor, assignment_id, teacher_id):
    """仅当作业属于该教师时返回"""
    cursor.execute(
        f"SELECT {ASSIGNMENT_COLUMNS} FROM assignments WHERE id = %s AND teacher_id = %s",
        (assignment_id, teacher_id)
    )
    return cursor.fetchone()


def get_latest_assignment(cursor, teacher_id):
    cursor.execute(
        f"""SELECT {ASSIGNMENT_COLUMNS} FROM assignments WHERE teacher_id = %s
            ORDER BY created_at DESC LIMIT 1""",
        (teacher_id,)
    )
    return cursor.fetchone()


def insert_assignment(cursor, teacher_id, title, description, due_date, status):
    cursor.execute(
        """INSERT INTO assignments (teacher_id, title, description, due_date, status, created_at, updated_at)
           VALUES (%s, %s, %s, %s, %s, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)""",
        (teacher_id, title, description, due_date, status)
    )
    return cursor.lastrowid


def update_assignment(cursor, assignment_id, title, description, due_date, status):
    cursor.execute(
        """UPDATE assignments SET title = %s, description = %s, due_date = %s, status = %s,
           updated_at = CURRENT_TIMESTAMP WHERE id = %s""",
        (title, description, due_date, status, assignment_id)
    )


def set_assignment_status(cursor, assignment_id, status):
    cursor.execute(
        "UPDATE assignments SET status = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
        (status, assignment_id)
    )


def delete_assignment(cursor, assignment_id):
    """
    删除作业及其所有关联数据
    顺序：提交附件 -> 提交 -> 评论 -> 分配记录 -> 作业附件 -> 作业
    """
    cursor.execute(
        """DELETE sa FROM submission_attachments sa
           INNER JOIN submissions s ON sa.submission_id = s.id
           WHERE s.assignment_id = %s""",
        (assignment_id,)
    )
    cursor.execute("DELETE FROM submissions WHERE assignment_id = %s", (assignment_id,))
    cursor.execute("DELETE FROM comments WHERE assignment_id = %s", (assignment_id,))
    cursor.execute("DELETE FROM assignment_students WHERE assignment_id = %s", (assignment_id,))
    cursor.execute("DELETE FROM assignment_attachments WHERE assignment_id = %s", (assignment_id,))
    cursor.execute("DELETE FROM assignments WHERE id = %s", (assignment_id,))


def get_assignment_student_ids(cursor, assignment_id):
    cursor.execute(
        "SELECT student_id FROM assignment_students WHERE assignment_id = %s",
        (assignment_id,)
    )
    return [row['student_id'] for row in cursor.fetchall()]


def get_assignment_students_for(cursor, assignment_ids):
    """多个作业的分配记录，每行包含 assignment_id 和 student_id"""
    if not assignment_ids:
        return []
    ids = list(assignment_ids)
    cursor.execute(
        f"""SELECT assignment_id, student_id, status FROM assignment_students
            WHERE assignment_id IN ({_placeholders(ids)})""",
        tuple(ids)
    )
    return cursor.fetchall()


def replace_assignment_students(cursor, assignment_id, student_ids):
    """先删除旧的分配记录，再插入新选择的学生（状态均为unseen）"""
    cursor.execute("DELETE FROM assignment_students WHERE assignment_id = %s", (assignment_id,))
    if student_ids:
        cursor.executemany(
            "INSERT INTO assignment_students (assignment_id, student_id, status) VALUES (%s, %s, 'unseen')",
            [(assignment_id, student_id) for student_id in student_ids]
        )


def get_student_assignments(cursor, student_id):
    """学生被分配的所有作业，按截止时间升序"""
    cursor.execute(
        """SELECT a.id, a.teacher_id, a.title, a.description, a.due_date, a.status,
                  a.created_at
           FROM assignment_students ast
           JOIN assignments a ON ast.assignment_id = a.id
           WHERE ast.student_id = %s
           ORDER BY a.due_date ASC""",
        (student_id,)
    )
    return cursor.fetchall()


def is_assigned(cursor, assignment_id, student_id):
    cursor.execute(
        "SELECT id FROM assignment_students WHERE assignment_id = %s AND student_id = %s",
        (assignment_id, student_id)
    )
    return cursor.fetchone() is not None


def mark_assignment_seen(cursor, assignment_id, student_id):
    cursor.execute(
        """UPDATE assignment_students SET status = 'seen'
           WHERE assignment_id = %s AND student_id = %s AND status = 'unseen'""",
        (assignment_id, student_id)
    )


# ==================== 附件 ====================
ATTACHMENT_COLUMNS = "id, file_name, file_url, file_size, file_type, created_at"


def get_assignment_attachments(cursor, assignment_id):
    cursor.execute(
        f"SELECT {ATTACHMENT_COLUMNS}, assignment_id FROM assignment_attachments WHERE assignment_id = %s",
        (assignment_id,)
    )
    return cursor.fetchall()


def get_assignment_attachment(cursor, attachment_id):
    cursor.execute(
        f"SELECT {ATTACHMENT_COLUMNS}, assignment_id FROM assignment_attachments WHERE id = %s",
        (attachment_id,)
    )
    return cursor.fetchone()


def insert_assignment_attachment(cursor, assignment_id, file_info):
    cursor.execute(
        """INSERT INTO assignment_attachments (assignment_id, file_name, file_url, file_size, file_type)
           VALUES (%s, %s, %s, %s, %s)""",
        (assignment_id, file_info['file_name'], file_info['file_url'],
         file_info['file_size'], file_info['file_type'])
    )
    return cursor.lastrowid


def delete_assignment_attachment(cursor, attachment_id):
    cursor.execute("DELETE FROM assignment_attachments WHERE id = %s", (attachment_id,))


def get_submission_attachments(cursor, submission_ids):
    if not submission_ids:
        return []
    ids = list(submission_ids)
    cursor.execute(
        f"""SELECT {ATTACHMENT_COLUMNS}, submission_id FROM submission_attachments
            WHERE submission_id IN ({_placeholders(ids)})""",
        tuple(ids)
    )
    return cursor.fetchall()


def get_submission_attachments_for_assignment(cursor, assignment_id):
    """某个作业下所有提交的附件（删除作业时用于清理存储文件）"""
    cursor.execute(
        """SELECT sa.id, sa.file_url FROM submission_attachments sa
           JOIN submissions s ON sa.submission_id = s.id
           WHERE s.assignment_id = %s""",
        (assignment_id,)
    )
    return cursor.fetchall()


def get_submission_attachment(cursor, attachment_id):
    cursor.execute(
        f"SELECT {ATTACHMENT_COLUMNS}, submission_id FROM submission_attachments WHERE id = %s",
        (attachment_id,)
    )
    return cursor.fetchone()


def insert_submission_attachment(cursor, submission_id, file_info):
    cursor.execute(
        """INSERT INTO submission_attachments (submission_id, file_name, file_url, file_size, file_type)
           VALUES (%s, %s, %s, %s, %s)""",
        (submission_id, file_info['file_name'], file_info['file_url'],
         file_info['file_size'], file_info['file_type'])
    )
    return cursor.lastrowid


def delete_submission_attachment(cursor, attachment_id):
    cursor.execute("DELETE FROM submission_attachments WHERE id = %s", (attachment_id,))


# ==================== 提交 ====================
SUBMISSION_COLUMNS = ("id, assignment_id, student_id, content, submitted_at, grade, feedback, "
                      "graded_at, created_at, updated_at")


def _normalize_grade(row):
    # DECIMAL列返回为Decimal，统一转换为float
    if row and row.get('grade') is not None:
        row['grade'] = float(row['grade'])
    return row


def get_student_submissions(cursor, student_id):
    """学生的所有提交，按更新时间升序"""
    cursor.execute(
        f"SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE student_id = %s ORDER BY updated_at ASC",
        (student_id,)
    )
    return [_normalize_grade(row) for row in cursor.fetchall()]


def get_submissions_for_assignments(cursor, assignment_ids):
    if not assignment_ids:
        return []
    ids = list(assignment_ids)
    cursor.execute(
        f"SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE assignment_id IN ({_placeholders(ids)})",
        tuple(ids)
    )
    return [_normalize_grade(row) for row in cursor.fetchall()]


def get_submission(cursor, submission_id):
    cursor.execute(
        f"SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE id = %s",
        (submission_id,)
    )
    return _normalize_grade(cursor.fetchone())


def get_student_submission(cursor, assignment_id, student_id):
    cursor.execute(
        f"SELECT {SUBMISSION_COLUMNS} FROM submissions WHERE assignment_id = %s AND student_id = %s",
        (assignment_id, student_id)
    )
    return _normalize_grade(cursor.fetchone())


def insert_submission(cursor, assignment_id, student_id, content, submitted_at=None):
    cursor.execute(
        """INSERT INTO submissions (assignment_id, student_id, content, submitted_at, created_at, updated_at)
           VALUES (%s, %s, %s, %s, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)""",
        (assignment_id, student_id, content, submitted_at)
    )
    return cursor.lastrowid


def update_submission_content(cursor, submission_id, content, submitted_at=None):
    """更新提交内容；传入submitted_at时同时标记为已提交"""
    if submitted_at is None:
        cursor.execute(
            "UPDATE submissions SET content = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
            (content, submission_id)
        )
    else:
        cursor.execute(
            """UPDATE submissions SET content = %s, submitted_at = %s, updated_at = CURRENT_TIMESTAMP
               WHERE id = %s""",
            (content, submitted_at, submission_id)
        )


def grade_submission(cursor, submission_id, grade, feedback, graded_at):
    cursor.execute(
        """UPDATE submissions SET grade = %s, feedback = %s, graded_at = %s, updated_at = CURRENT_TIMESTAMP
           WHERE id = %s""",
        (grade, feedback, graded_at, submission_id)
    )


def get_graded_rows_for_students(cursor, student_ids):
    """多个学生所有已评分的提交（student_id, grade），用于班级排名"""
    if not student_ids:
        return []
    ids = list(student_ids)
    cursor.execute(
        f"""SELECT student_id, grade FROM submissions
            WHERE student_id IN ({_placeholders(ids)}) AND grade IS NOT NULL""",
        tuple(ids)
    )
    return [_normalize_grade(row) for row in cursor.fetchall()]


def get_student_grade_rows(cursor, student_id):
    """学生已评分的提交，附带作业标题和教师姓名"""
    cursor.execute(
        """SELECT s.id, s.assignment_id, s.submitted_at, s.graded_at, s.updated_at,
                  s.grade, s.feedback, a.title AS assignment_title,
                  p.full_name AS teacher_name
           FROM submissions s
           JOIN assignments a ON s.assignment_id = a.id
           LEFT JOIN profiles p ON a.teacher_id = p.id
           WHERE s.student_id = %s AND s.grade IS NOT NULL
           ORDER BY s.graded_at DESC""",
        (student_id,)
    )
    return [_normalize_grade(row) for row in cursor.fetchall()]


# ==================== 评论 ====================
def get_comments(cursor, assignment_id):
    """作业讨论区的评论，附带作者姓名和角色，按时间升序"""
    cursor.execute(
        """SELECT c.id, c.assignment_id, c.user_id, c.message, c.created_at,
                  p.full_name AS author_name, p.role AS author_role
           FROM comments c
           LEFT JOIN profiles p ON c.user_id = p.id
           WHERE c.assignment_id = %s
           ORDER BY c.created_at ASC""",
        (assignment_id,)
    )
    return cursor.fetchall()


def insert_comment(cursor, assignment_id, user_id, message):
    cursor.execute(
        "INSERT INTO comments (assignment_id, user_id, message, created_at) VALUES (%s, %s, %s, CURRENT_TIMESTAMP)",
        (assignment_id, user_id, message)
    )
    return cursor.lastrowid


def get_comment(cursor, comment_id):
    cursor.execute(
        """SELECT c.id, c.assignment_id, c.user_id, c.message, c.created_at,
                  p.full_name AS author_name, p.role AS author_role
           FROM comments c
           LEFT JOIN profiles p ON c.user_id = p.id
           WHERE c.id = %s""",
        (comment_id,)
    )
    return cursor.fetchone()


def get_recent_comments(cursor, assignment_ids, exclude_user_id, limit=2):
    """这些作业下其他用户发表的最新评论"""
    if not assignment_ids:
        return []
    ids = list(assignment_ids)
    cursor.execute(
        f"""SELECT id, user_id, assignment_id, created_at FROM comments
            WHERE assignment_id IN ({_placeholders(ids)}) AND user_id <> %s
            ORDER BY created_at DESC LIMIT %s""",
        tuple(ids) + (exclude_user_id, limit)
    )
    return cursor.fetchall()

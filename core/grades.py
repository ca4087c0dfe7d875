"""
成绩统计模块
提供成绩校验、平均分、成绩分布、班级排名和成绩趋势等计算功能
所有函数只处理已经查询出的数据，不访问数据库
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from bs4 import BeautifulSoup
from .status import to_datetime

GRADE_MIN = 0
GRADE_MAX = 100

# 成绩分布区间：(名称, 下限)，从高到低依次匹配
GRADE_BUCKETS = [
    ('A (90-100)', 90),
    ('B (80-89)', 80),
    ('C (70-79)', 70),
    ('D (<70)', GRADE_MIN),
]


def parse_grade(value):
    """
    解析教师输入的分数

    Args:
        value: 表单或JSON中的分数，空字符串或None表示清除分数

    Returns:
        float或None

    异常：
        ValueError: 分数不是数字或不在0-100之间
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise ValueError('分数必须是0-100之间的数字')
    if grade != grade or grade < GRADE_MIN or grade > GRADE_MAX:
        raise ValueError('分数必须是0-100之间的数字')
    return grade


def round1(value):
    """保留一位小数（四舍五入）"""
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def average(values):
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def graded(submissions):
    """筛选出已评分的提交"""
    return [s for s in submissions if s.get('grade') is not None]


def grade_summary(grades):
    """
    成绩汇总

    Args:
        grades: 分数列表

    Returns:
        dict: 已评分数量、平均分、最高分、最低分、90分及以上数量、70分以下数量
    """
    grades = list(grades)
    if not grades:
        return {
            'total_graded': 0,
            'average_grade': 0,
            'highest_grade': 0,
            'lowest_grade': 0,
            'above_90': 0,
            'below_70': 0,
        }
    return {
        'total_graded': len(grades),
        'average_grade': round1(average(grades)),
        'highest_grade': max(grades),
        'lowest_grade': min(grades),
        'above_90': len([g for g in grades if g >= 90]),
        'below_70': len([g for g in grades if g < 70]),
    }


def grade_distribution(grades):
    """按A/B/C/D区间统计成绩分布，省略数量为0的区间"""
    counts = {name: 0 for name, _ in GRADE_BUCKETS}
    for grade in grades:
        name = next((name for name, low in GRADE_BUCKETS if grade >= low), None)
        if name:
            counts[name] += 1
    return [{'name': name, 'value': counts[name]} for name, _ in GRADE_BUCKETS if counts[name] > 0]


def averages_by_student(rows):
    """将 (student_id, grade) 行按学生分组并求平均"""
    grouped = {}
    for row in rows:
        if row.get('grade') is None:
            continue
        grouped.setdefault(row['student_id'], []).append(row['grade'])
    return {student_id: average(grades) for student_id, grades in grouped.items()}


def class_ranking(own_average, student_averages):
    """
    计算班级排名

    排名 = 平均分严格高于自己的同学人数 + 1，分数相同的同学排名相同

    Args:
        own_average: 当前学生的平均分
        student_averages: {student_id: 平均分}

    Returns:
        int: 排名（从1开始）
    """
    return len([avg for avg in student_averages.values() if avg > own_average]) + 1


def percentile_better_than(rank, total):
    """超过了班级百分之多少的同学"""
    if total <= 0:
        return 0
    percent = Decimal((total - rank) * 100) / Decimal(total)
    return int(percent.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def grade_trend(submissions, limit=6):
    """
    最近几次已评分提交的成绩趋势

    Args:
        submissions: 按时间升序排列的提交记录
        limit: 保留的次数

    Returns:
        list: [{'assignment': '#1', 'grade': 88.0}, ...]
    """
    recent = graded(submissions)[-limit:]
    return [{'assignment': f'#{idx + 1}', 'grade': s['grade']} for idx, s in enumerate(recent)]


def trend_direction(graded_rows, last3_average, overall_average, last3_count):
    """
    判断学生成绩走势（up/down）

    - 学生在最近三次作业之外还有成绩时，比较最近三次平均分与总平均分
    - 否则，有两次及以上成绩时，按提交时间排序，比较后半段与前半段的平均分
    """
    if last3_average is not None and len(graded_rows) > last3_count:
        return 'up' if last3_average >= overall_average else 'down'
    if len(graded_rows) >= 2:
        ordered = sorted(graded_rows, key=lambda s: to_datetime(s.get('submitted_at')) or datetime.min)
        mid = len(ordered) // 2
        first_avg = average(s['grade'] for s in ordered[:mid])
        last_avg = average(s['grade'] for s in ordered[mid:])
        return 'up' if last_avg >= first_avg else 'down'
    return 'up'


def strip_html(text):
    """去掉评语中的HTML标签，只保留文本"""
    if not text:
        return ''
    return BeautifulSoup(text, 'html.parser').get_text()

"""
Test: page aggregates for the student and teacher views.
"""
from datetime import datetime, timedelta

from core import dashboard

NOW = datetime(2025, 3, 10, 12, 0)
FUTURE = NOW + timedelta(days=3)
PAST = NOW - timedelta(days=3)


def assignment(aid, status='active', due=FUTURE, title=None, teacher_id=1, created_at=None):
    return {
        'id': aid,
        'teacher_id': teacher_id,
        'title': title or f'Assignment {aid}',
        'description': f'Description {aid}',
        'due_date': due,
        'status': status,
        'created_at': created_at or NOW - timedelta(days=aid),
    }


def submission(sid, aid, student_id=2, submitted_at=None, grade=None, **extra):
    row = {
        'id': sid,
        'assignment_id': aid,
        'student_id': student_id,
        'content': '<p>answer</p>',
        'submitted_at': submitted_at,
        'grade': grade,
        'feedback': None,
        'graded_at': None,
        'updated_at': submitted_at,
    }
    row.update(extra)
    return row


class TestHelpers:
    def test_time_ago_minutes(self):
        assert dashboard.time_ago(NOW - timedelta(minutes=30), NOW) == '30 minutes ago'
        assert dashboard.time_ago(NOW - timedelta(minutes=1), NOW) == '1 minute ago'

    def test_time_ago_hours_and_days(self):
        assert dashboard.time_ago(NOW - timedelta(hours=5), NOW) == '5 hours ago'
        assert dashboard.time_ago(NOW - timedelta(days=1, hours=2), NOW) == '1 day ago'

    def test_shorten(self):
        assert dashboard.shorten('Essay on the French Revolution') == 'Essay on the…'
        assert dashboard.shorten('Short') == 'Short'

    def test_percent(self):
        assert dashboard.percent(1, 3) == 33
        assert dashboard.percent(1, 2) == 50
        assert dashboard.percent(0, 0) == 0

    def test_display_name_falls_back_to_email(self):
        assert dashboard.display_name({'full_name': None, 'email': 'a@b.c'}) == 'a@b.c'
        assert dashboard.display_name(None, 'Student') == 'Student'


class TestStudentDashboard:
    def setup_method(self):
        self.assigned = [
            assignment(1),
            assignment(2, due=PAST),
            assignment(3, status='closed'),
            assignment(4),
        ]
        self.submissions = [
            submission(11, 1, submitted_at=PAST, grade=90),
            submission(14, 4),
        ]
        self.classmates = [
            {'student_id': 2, 'grade': 90},
            {'student_id': 3, 'grade': 95},
            {'student_id': 4, 'grade': 70},
        ]

    def test_stats(self):
        data = dashboard.student_dashboard(self.assigned, self.submissions, self.classmates, 4, NOW)
        assert data['stats'] == {
            'total_assignments': 4,
            'completed': 1,
            'pending': 0,
            'overdue': 1,
            'locked': 1,
            'draft': 1,
            'average_grade': 90.0,
            'ranking': 2,
            'total_students': 4,
            'better_than_percent': 50,
        }

    def test_breakdown_drops_zero_slices(self):
        data = dashboard.student_dashboard(self.assigned, self.submissions, self.classmates, 4, NOW)
        names = [item['name'] for item in data['status_breakdown']]
        assert names == ['Submitted', 'Draft', 'Overdue', 'Locked']

    def test_recent_assignments_carry_status(self):
        data = dashboard.student_dashboard(self.assigned, self.submissions, self.classmates, 4, NOW)
        assert [a['status'] for a in data['recent_assignments']] == ['graded', 'overdue', 'locked', 'draft']

    def test_single_student_is_ranked_first(self):
        data = dashboard.student_dashboard(self.assigned, self.submissions, [{'student_id': 2, 'grade': 90}], 1, NOW)
        assert data['stats']['ranking'] == 1

    def test_no_grades_keeps_rank_one(self):
        data = dashboard.student_dashboard(self.assigned, [], self.classmates, 4, NOW)
        assert data['stats']['ranking'] == 1
        assert data['stats']['average_grade'] == 0


class TestStudentAssignmentList:
    def test_search_matches_teacher_name(self):
        assigned = [assignment(1), assignment(2, teacher_id=5)]
        result = dashboard.student_assignment_list(
            assigned, [], {1: 'Ms. Rivera', 5: 'Mr. Chen'}, NOW, search='rivera')
        assert [a['id'] for a in result['assignments']] == [1]
        assert result['counts']['all'] == 2

    def test_status_filter_and_counts(self):
        assigned = [assignment(1), assignment(2, due=PAST)]
        result = dashboard.student_assignment_list(assigned, [], {}, NOW, status='overdue')
        assert [a['id'] for a in result['assignments']] == [2]
        assert result['assignments'][0]['teacher_name'] == 'Unknown Teacher'
        assert result['counts']['pending'] == 1
        assert result['counts']['overdue'] == 1


class TestStudentGrades:
    def test_feedback_and_graded_at_fallback(self):
        rows = [
            {'id': 1, 'assignment_id': 3, 'assignment_title': 'Lab report', 'teacher_name': 'Ms. Rivera',
             'submitted_at': PAST, 'graded_at': None, 'updated_at': NOW, 'grade': 92.0,
             'feedback': '<p>Great <em>analysis</em></p>'},
            {'id': 2, 'assignment_id': 4, 'assignment_title': None, 'teacher_name': None,
             'submitted_at': PAST, 'graded_at': None, 'updated_at': None, 'grade': 64.0,
             'feedback': ''},
        ]
        result = dashboard.student_grades(rows)
        first, second = result['grades']
        assert first['feedback'] == 'Great analysis'
        assert first['graded_at'] == NOW
        assert second['feedback'] == 'No feedback provided'
        assert second['graded_at'] == PAST
        assert second['assignment_title'] == 'Unknown Assignment'
        assert result['stats']['above_90'] == 1
        assert result['stats']['below_70'] == 1


class TestTeacherAssignmentList:
    def test_counts_per_assignment(self):
        assignments = [assignment(1), assignment(2, due=PAST), assignment(3, status='draft')]
        links = [
            {'assignment_id': 1, 'student_id': 2},
            {'assignment_id': 1, 'student_id': 3},
            {'assignment_id': 2, 'student_id': 2},
        ]
        subs = [
            submission(1, 1, student_id=2, submitted_at=PAST, grade=80),
            submission(2, 1, student_id=3),
        ]
        result = dashboard.teacher_assignment_list(assignments, links, subs, NOW)
        first = result['assignments'][0]
        assert (first['total_students'], first['submitted'], first['pending'], first['graded']) == (2, 1, 1, 1)
        assert result['assignments'][1]['status'] == 'overdue'
        assert result['counts'] == {'active': 1, 'draft': 1, 'closed': 0, 'overdue': 1, 'total': 3}

    def test_status_filter(self):
        assignments = [assignment(1), assignment(2, status='closed')]
        result = dashboard.teacher_assignment_list(assignments, [], [], NOW, status='closed')
        assert [a['id'] for a in result['assignments']] == [2]


class TestGradingView:
    def setup_method(self):
        self.assignment = assignment(7)
        self.profiles = {
            2: {'id': 2, 'full_name': 'Sam Lee', 'email': 'sam@example.com'},
            3: {'id': 3, 'full_name': None, 'email': 'kim@example.com'},
        }
        self.submissions = [
            submission(20, 7, student_id=2, submitted_at=PAST, grade=88),
            submission(21, 7, student_id=3, submitted_at=PAST),
        ]
        self.attachments = [{'id': 5, 'submission_id': 21, 'file_name': 'essay.pdf',
                             'file_size': 1200, 'file_url': '/files/submission-files/x', 'file_type': 'application/pdf'}]
        self.comments = [{'id': 1, 'author_name': 'Sam Lee', 'author_role': 'student',
                          'message': 'Is page two required?', 'created_at': PAST}]

    def test_placeholder_rows_and_header(self):
        view = dashboard.grading_view(self.assignment, [2, 3, 4], self.profiles,
                                      self.submissions, self.attachments, self.comments)
        ids = [row['id'] for row in view['submissions']]
        assert ids == [20, 21, 'pending-4']
        assert view['submissions'][2]['status'] == 'pending'
        assert view['submissions'][1]['student_name'] == 'kim@example.com'
        assert view['submissions'][1]['attachments'][0]['file_name'] == 'essay.pdf'
        assert view['assignment']['total_students'] == 3
        assert view['assignment']['submitted'] == 2
        assert view['assignment']['graded'] == 1

    def test_selects_first_ungraded(self):
        view = dashboard.grading_view(self.assignment, [2, 3], self.profiles,
                                      self.submissions, [], self.comments)
        assert view['selected']['id'] == 21
        assert view['all_graded'] is False
        assert view['selected']['comments'][0]['message'] == 'Is page two required?'

    def test_all_graded(self):
        view = dashboard.grading_view(self.assignment, [2], self.profiles, self.submissions[:1], [], [])
        assert view['all_graded'] is True
        assert view['selected']['id'] == 20


class TestRoster:
    def setup_method(self):
        added = NOW - timedelta(days=30)
        self.students = [
            {'id': 2, 'email': 'sam@example.com', 'full_name': 'Sam Lee', 'added_at': added},
            {'id': 3, 'email': 'kim@example.com', 'full_name': 'Kim Park', 'added_at': added},
            {'id': 4, 'email': 'ada@example.com', 'full_name': 'Ada Ng', 'added_at': added},
        ]
        self.links = [{'assignment_id': 1, 'student_id': sid} for sid in (2, 3, 4)] + \
            [{'assignment_id': 2, 'student_id': 2}]
        self.submissions = [
            submission(1, 1, student_id=2, submitted_at=PAST, grade=95),
            submission(2, 2, student_id=2, submitted_at=NOW - timedelta(days=1), grade=91),
            submission(3, 1, student_id=3, submitted_at=PAST, grade=60),
            submission(4, 1, student_id=4),
        ]

    def test_student_rows(self):
        result = dashboard.roster(self.students, self.links, self.submissions)
        sam, kim, ada = result['students']
        assert sam['total_assignments'] == 2
        assert sam['submitted'] == 2
        assert sam['average_grade'] == 93.0
        assert sam['last_activity'] == NOW - timedelta(days=1)
        assert ada['submitted'] == 0
        assert ada['average_grade'] is None
        assert ada['last_activity'] == self.students[2]['added_at']

    def test_stats(self):
        stats = dashboard.roster(self.students, self.links, self.submissions)['stats']
        assert stats == {
            'total_students': 3,
            'active_students': 3,
            'average_grade': 76.5,
            'top_performers': 1,
            'needs_attention': 1,
        }

    def test_filters(self):
        top = dashboard.roster(self.students, self.links, self.submissions, filter_by='top')
        assert [s['id'] for s in top['students']] == [2]
        attention = dashboard.roster(self.students, self.links, self.submissions, filter_by='attention')
        assert [s['id'] for s in attention['students']] == [3]
        search = dashboard.roster(self.students, self.links, self.submissions, search='ADA@')
        assert [s['id'] for s in search['students']] == [4]


class TestTeacherDashboard:
    def test_submission_trend_weeks(self):
        assignments = [assignment(1, due=NOW - timedelta(days=5)), assignment(2, due=NOW - timedelta(days=9))]
        subs = [
            submission(1, 1, submitted_at=NOW - timedelta(days=6)),
            submission(2, 2, submitted_at=NOW - timedelta(days=10)),
            submission(3, 1, student_id=3),
        ]
        trend = dashboard.submission_trend(assignments, subs, NOW)
        assert [w['week'] for w in trend] == ['Week 1', 'Week 2', 'Week 3', 'Week 4']
        assert trend[3] == {'week': 'Week 4', 'on_time': 1, 'late': 0}
        assert trend[2] == {'week': 'Week 3', 'on_time': 1, 'late': 0}

    def test_late_submission(self):
        subs = [submission(1, 1, submitted_at=NOW - timedelta(days=1))]
        trend = dashboard.submission_trend([assignment(1, due=NOW - timedelta(days=2))], subs, NOW)
        assert trend[3] == {'week': 'Week 4', 'on_time': 0, 'late': 1}

    def test_dashboard_sections(self):
        assignments = [
            assignment(1, title='Photosynthesis lab write-up', due=NOW + timedelta(days=2)),
            assignment(2, due=NOW + timedelta(days=1)),
            assignment(3, status='draft', due=NOW + timedelta(days=1)),
        ]
        links = [{'assignment_id': 1, 'student_id': 2}, {'assignment_id': 1, 'student_id': 3},
                 {'assignment_id': 2, 'student_id': 2}]
        subs = [
            submission(1, 1, student_id=2, submitted_at=NOW - timedelta(hours=2), grade=92),
            submission(2, 1, student_id=3, submitted_at=NOW - timedelta(hours=1)),
        ]
        profiles = {
            2: {'id': 2, 'full_name': 'Sam Lee', 'email': 'sam@example.com'},
            3: {'id': 3, 'full_name': 'Kim Park', 'email': 'kim@example.com'},
        }
        comments = [{'id': 8, 'user_id': 3, 'assignment_id': 2, 'created_at': NOW - timedelta(minutes=5)}]

        data = dashboard.teacher_dashboard([2, 3], assignments, links, subs, profiles, comments, NOW)

        assert data['stats'] == {
            'total_students': 2,
            'total_assignments': 3,
            'pending_submissions': 1,
            'average_grade': 92.0,
        }
        assert data['assignment_completion'][0] == {
            'assignment_id': 1, 'assignment': 'Photosynthes…', 'completion': 100}
        assert [s['id'] for s in data['top_students']] == [2]
        assert data['grade_distribution'] == [{'name': 'A (90-100)', 'value': 1}]
        assert [d['id'] for d in data['upcoming_deadlines']] == [2, 1]
        assert data['upcoming_deadlines'][1]['submissions'] == 2
        assert data['recent_activity'][0]['student'] == 'Kim Park'
        assert data['recent_activity'][-1]['type'] == 'question'
        assert data['recent_activity'][-1]['time'] == '5 minutes ago'

    def test_empty_class(self):
        data = dashboard.teacher_dashboard([], [], [], [], {}, [], NOW)
        assert data['stats']['average_grade'] == 0
        assert data['top_students'] == []
        assert data['upcoming_deadlines'] == []

    def test_needs_attention_lists_weakest_recent_work_first(self):
        dues = {1: NOW - timedelta(days=20), 2: NOW - timedelta(days=15),
                3: NOW - timedelta(days=10), 4: NOW - timedelta(days=5)}
        assignments = [assignment(aid, due=due) for aid, due in dues.items()]
        grades = {
            2: {1: 95, 2: 95, 3: 95, 4: 95},
            3: {1: 80, 2: 50, 3: 60},
            4: {3: 70, 4: 74},
        }
        rows = [(student_id, aid, grade) for student_id, by_assignment in grades.items()
                for aid, grade in by_assignment.items()]
        subs = [submission(sid, aid, student_id=student_id, submitted_at=dues[aid] - timedelta(days=1), grade=grade)
                for sid, (student_id, aid, grade) in enumerate(rows, 1)]
        profiles = {sid: {'id': sid, 'full_name': f'Student {sid}', 'email': f's{sid}@example.com'}
                    for sid in (2, 3, 4, 5)}

        data = dashboard.teacher_dashboard([2, 3, 4, 5], assignments, [], subs, profiles, [], NOW)

        assert data['stats']['average_grade'] == 79.3
        attention = data['needs_attention']
        assert [p['id'] for p in attention] == [3, 4]
        assert attention[0]['grade'] == 55.0
        assert attention[0]['trend'] == 'down'
        assert attention[0]['missing'] == 1
        assert attention[1]['grade'] == 72.0
        assert attention[1]['trend'] == 'up'
        assert attention[1]['missing'] == 2

"""
Tests for XP / currency awarding.
"""
from bossarena_app import db
from bossarena_app.core.signals import score_awarded
from bossarena_app.modules.gamification.models import ScoreLog
from bossarena_app.modules.gamification.services import ScoreService


class TestScoreService:

    def test_award_points_updates_total_and_logs(self, make_user):
        user = make_user()
        result = ScoreService.award_points(user.user_id, 30, 'Quest complete', item_type='QUEST')

        assert result['success'] is True
        assert result['new_total'] == 30
        assert user.total_score == 30
        log = ScoreLog.query.one()
        assert log.score_change == 30
        assert log.item_type == 'QUEST'

    def test_award_currency(self, make_user):
        user = make_user()
        ScoreService.award_currency(user.user_id, 12, 'Boss loot', item_type='BOSS_QUIZ', reference_id=3)
        assert user.currency == 12
        assert user.total_score == 0
        assert ScoreLog.query.one().reference_id == 3

    def test_unknown_user(self, app):
        assert ScoreService.award_points(999, 10, 'ghost')['success'] is False

    def test_zero_award_is_a_no_op(self, make_user):
        user = make_user()
        ScoreService.award_points(user.user_id, 0, 'nothing')
        assert ScoreLog.query.count() == 0

    def test_deferred_commit_joins_callers_transaction(self, make_user):
        user = make_user()
        sent = []

        def receiver(sender, **kwargs):
            sent.append(kwargs)

        score_awarded.connect(receiver)
        try:
            ScoreService.award_points(user.user_id, 10, 'pending', commit=False)
            db.session.rollback()
        finally:
            score_awarded.disconnect(receiver)

        assert sent == []
        assert ScoreLog.query.count() == 0
        assert user.total_score == 0

    def test_signal_sent_on_commit(self, make_user):
        user = make_user()
        sent = []

        def receiver(sender, **kwargs):
            sent.append(kwargs)

        score_awarded.connect(receiver)
        try:
            ScoreService.award_points(user.user_id, 5, 'hello')
        finally:
            score_awarded.disconnect(receiver)

        assert sent[0]['user_id'] == user.user_id
        assert sent[0]['amount'] == 5
        assert sent[0]['new_total'] == 5

    def test_all_time_leaderboard(self, make_user):
        a, b = make_user('alpha'), make_user('beta')
        ScoreService.award_points(a.user_id, 10, 'x')
        ScoreService.award_points(b.user_id, 25, 'y')

        board = ScoreService.get_leaderboard('all_time', limit=5)
        assert [row['username'] for row in board] == ['beta', 'alpha']

    def test_weekly_leaderboard_sums_logs(self, make_user):
        a = make_user('alpha')
        ScoreService.award_points(a.user_id, 10, 'x')
        ScoreService.award_points(a.user_id, 15, 'y')

        board = ScoreService.get_leaderboard('week')
        assert board == [{'username': 'alpha', 'user_id': a.user_id, 'score': 25}]


class TestGamificationRoutes:

    def test_history(self, login, make_user):
        user = make_user()
        ScoreService.award_points(user.user_id, 7, 'first')
        ScoreService.award_points(user.user_id, 3, 'second')

        data = login(user).get('/api/gamification/history?per_page=1').get_json()
        assert data['success'] is True
        assert data['total'] == 2
        assert len(data['logs']) == 1

    def test_leaderboard_marks_current_user(self, login, make_user):
        me, other = make_user('me'), make_user('other')
        ScoreService.award_points(other.user_id, 50, 'x')

        data = login(me).get('/api/gamification/leaderboard').get_json()
        flags = {row['username']: row['is_current'] for row in data['leaderboard']}
        assert flags == {'other': False, 'me': True}

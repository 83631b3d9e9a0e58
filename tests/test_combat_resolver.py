"""
Tests for answer resolution: damage, idempotency, defense rules, failures.
"""
import math
from datetime import timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

from bossarena_app import db
from bossarena_app.core.error_handlers import (
    AuthorizationError,
    ConcurrencyConflictError,
    KnockedOutError,
    NotFoundError,
    ValidationError,
)
from bossarena_app.modules.boss_quiz.logics.combat_logic import combat_profile_for
from bossarena_app.modules.boss_quiz.models import BossQuizProgress, DamageShard
from bossarena_app.modules.boss_quiz.services import (
    BossQuizService,
    CombatResolver,
    DamageLedger,
    ProgressTracker,
)
from bossarena_app.utils.time_utils import utcnow
from conftest import answer_all_correct, question_defs


class FixedRoll:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def wrong_choice(question):
    return (question.correct_index + 1) % len(question.options)


class TestCorrectAnswers:

    def test_correct_answer_damages_boss(self, make_quiz, make_user):
        quiz = make_quiz(max_hp=100, damage_per_correct=20)
        user = make_user()
        question = quiz.questions[0]

        outcome = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, question.correct_index)

        assert outcome.correct is True
        assert outcome.damage == 20
        assert outcome.boss_hp == 80
        assert outcome.boss_defeated is False
        assert outcome.player_hp == 100

        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.total_damage_dealt == 20
        assert progress.questions_attempted == 1
        assert progress.questions_correct == 1
        assert progress.correct_medium == 1
        assert progress.current_streak == 1
        assert progress.answered_question_ids == [question.question_id]
        assert progress.damage_reached_at is not None

    def test_question_damage_bonus_applies(self, make_quiz, make_user):
        questions = question_defs(3)
        questions[0]['damage_bonus'] = 7
        quiz = make_quiz(questions=questions)
        question = next(q for q in quiz.questions if q.damage_bonus == 7)

        outcome = CombatResolver.resolve_answer(quiz.quiz_id, make_user(), question.question_id, 0)
        assert outcome.damage == 27

    def test_crit_from_equipment(self, make_quiz, make_user):
        equipped = {'visor': {'stats': {'focus': 15}}}
        quiz = make_quiz(max_hp=1000, damage_per_correct=20)
        user = make_user(equipped=equipped)
        question = quiz.questions[0]

        outcome = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 0, rng=FixedRoll(0.0))

        expected = math.floor(20 * combat_profile_for(equipped).crit_multiplier)
        assert outcome.is_crit is True
        assert outcome.damage == expected
        assert DamageShard.query.one().is_crit is True
        assert ProgressTracker.get(user.user_id, quiz.quiz_id).critical_hits == 1

    def test_streak_tracks_longest(self, make_quiz, make_user):
        quiz = make_quiz(max_hp=1000)
        user = make_user()
        qs = quiz.questions
        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[0].question_id, 0)
        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[1].question_id, 0)
        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[2].question_id, wrong_choice(qs[2]))
        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[3].question_id, 0)

        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.current_streak == 1
        assert progress.longest_streak == 2
        assert progress.incorrect_medium == 1


class TestIdempotency:

    def test_repeat_submission_changes_nothing(self, make_quiz, make_user):
        quiz = make_quiz(max_hp=100)
        user = make_user()
        question = quiz.questions[0]

        first = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 0)
        second = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 0)
        third = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 2)

        assert first.already_answered is False
        assert second.already_answered is True
        assert third.already_answered is True
        assert second.damage == 0
        assert second.boss_hp == 80

        assert DamageShard.query.count() == 1
        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.questions_attempted == 1
        assert progress.total_damage_dealt == 20

    def test_wrong_answer_is_not_retryable(self, make_quiz, make_user):
        quiz = make_quiz()
        user = make_user()
        question = quiz.questions[0]

        CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, wrong_choice(question))
        retry = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, question.correct_index)

        assert retry.already_answered is True
        assert DamageShard.query.count() == 0


class TestBossDefeat:

    def test_five_hits_of_twenty_defeat_a_hundred_hp_boss(self, make_quiz, make_user):
        quiz = make_quiz(max_hp=100, damage_per_correct=20, reward_xp=100, reward_flux=10)
        user = make_user()

        outcomes = answer_all_correct(quiz, user, count=5)

        assert [o.boss_hp for o in outcomes] == [80, 60, 40, 20, 0]
        assert [o.boss_defeated for o in outcomes] == [False] * 4 + [True]

        db.session.refresh(quiz)
        assert quiz.rewards_distributed is True
        assert quiz.defeated_at is not None

        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.reward_rank == 1
        assert progress.reward_xp == 150
        assert progress.reward_flux == 15
        assert user.total_score == 150

        sixth = quiz.questions[5]
        with pytest.raises(ValidationError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, user, sixth.question_id, 0)
        assert exc.value.reason == 'DEFEATED'

    def test_final_aggregate_independent_of_answer_order(self, make_quiz, make_user):
        def play(quiz, order):
            users = {name: make_user(f'{name}-{quiz.quiz_id}') for name in ('ann', 'ben', 'cid')}
            for name, index, correct in order:
                question = quiz.questions[index]
                choice = question.correct_index if correct else wrong_choice(question)
                CombatResolver.resolve_answer(quiz.quiz_id, users[name], question.question_id, choice)
            return DamageLedger.aggregate_damage(quiz.quiz_id)

        order = [
            ('ann', 0, True), ('ben', 0, False), ('cid', 1, True),
            ('ann', 2, True), ('ben', 3, True), ('cid', 4, False),
        ]
        first = play(make_quiz(max_hp=10000), order)
        second = play(make_quiz(max_hp=10000), list(reversed(order)))
        assert first == second == 80


class TestDefense:

    def test_shield_wall_blocks_first_two_wrong_answers(self, make_quiz, make_user):
        quiz = make_quiz(boss_damage=10, modifiers=[{'type': 'SHIELD_WALL', 'value': 2}])
        user = make_user()
        qs = quiz.questions

        outcomes = [
            CombatResolver.resolve_answer(quiz.quiz_id, user, q.question_id, wrong_choice(q))
            for q in qs[:3]
        ]

        assert [o.shield_blocked for o in outcomes] == [True, True, False]
        assert [o.player_hp for o in outcomes] == [100, 100, 90]
        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.shield_blocks_used == 2
        assert progress.boss_damage_taken == 10

    def test_armor_from_equipment_reduces_counter_damage(self, make_quiz, make_user):
        quiz = make_quiz(boss_damage=10)
        user = make_user(equipped={'coat': {'stats': {'analysis': 20}}})
        q = quiz.questions[0]

        outcome = CombatResolver.resolve_answer(quiz.quiz_id, user, q.question_id, wrong_choice(q))

        assert outcome.player_damage == 9
        assert ProgressTracker.get(user.user_id, quiz.quiz_id).damage_reduced == 1

    def test_healing_wave_heals_on_correct(self, make_quiz, make_user):
        quiz = make_quiz(max_hp=1000, boss_damage=30, modifiers=[{'type': 'HEALING_WAVE', 'value': 10}])
        user = make_user()
        qs = quiz.questions

        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[0].question_id, wrong_choice(qs[0]))
        healed = CombatResolver.resolve_answer(quiz.quiz_id, user, qs[1].question_id, 0)

        assert healed.heal_amount == 10
        assert healed.player_hp == 80
        assert ProgressTracker.get(user.user_id, quiz.quiz_id).healing_received == 10

    def test_knockout_blocks_further_answers(self, make_quiz, make_user):
        quiz = make_quiz(boss_damage=60)
        user = make_user()
        qs = quiz.questions

        CombatResolver.resolve_answer(quiz.quiz_id, user, qs[0].question_id, wrong_choice(qs[0]))
        knocked = CombatResolver.resolve_answer(quiz.quiz_id, user, qs[1].question_id, wrong_choice(qs[1]))
        assert knocked.player_hp == 0
        assert knocked.knocked_out is True

        with pytest.raises(KnockedOutError):
            CombatResolver.resolve_answer(quiz.quiz_id, user, qs[2].question_id, 0)

        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.questions_attempted == 2
        assert DamageShard.query.count() == 0

    def test_time_pressure_knockout_lands_no_damage(self, make_quiz, make_user):
        quiz = make_quiz(boss_damage=0, modifiers=[{'type': 'TIME_PRESSURE', 'value': 60}])
        user = make_user()
        qs = quiz.questions

        first = CombatResolver.resolve_answer(quiz.quiz_id, user, qs[0].question_id, 0)
        second = CombatResolver.resolve_answer(quiz.quiz_id, user, qs[1].question_id, 0)

        assert first.damage == 20
        assert first.player_hp == 40
        assert second.damage == 0
        assert second.knocked_out is True
        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        assert progress.questions_attempted == 2
        assert progress.questions_correct == 1
        assert progress.correct_medium == 1
        assert progress.current_streak == 0
        assert progress.longest_streak == 1
        assert progress.total_damage_dealt == 20
        assert DamageShard.query.count() == 1


class TestValidation:

    def test_unknown_quiz(self, app, make_user):
        with pytest.raises(NotFoundError):
            CombatResolver.resolve_answer(999, make_user(), 1, 0)

    def test_question_from_another_quiz(self, make_quiz, make_user):
        quiz, other = make_quiz(), make_quiz()
        with pytest.raises(NotFoundError):
            CombatResolver.resolve_answer(quiz.quiz_id, make_user(), other.questions[0].question_id, 0)

    def test_expired_quiz(self, make_quiz, make_user):
        quiz = make_quiz(deadline=(utcnow() - timedelta(minutes=1)).isoformat())
        with pytest.raises(ValidationError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, make_user(), quiz.questions[0].question_id, 0)
        assert exc.value.reason == 'EXPIRED'

    def test_inactive_quiz(self, make_quiz, make_user):
        quiz = make_quiz()
        BossQuizService.toggle_quiz(quiz.quiz_id)
        with pytest.raises(ValidationError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, make_user(), quiz.questions[0].question_id, 0)
        assert exc.value.reason == 'INACTIVE'

    def test_choice_out_of_range_creates_nothing(self, make_quiz, make_user):
        quiz = make_quiz()
        user = make_user()
        with pytest.raises(ValidationError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, user, quiz.questions[0].question_id, 4)
        assert exc.value.reason == 'INVALID_CHOICE'
        assert BossQuizProgress.query.count() == 0

    def test_question_outside_filtered_pool(self, make_quiz, make_user):
        questions = question_defs(2, difficulty='HARD') + question_defs(2, difficulty='EASY')
        quiz = make_quiz(questions=questions, modifiers=[{'type': 'HARD_ONLY'}])
        easy = next(q for q in quiz.questions if q.difficulty == 'EASY')
        with pytest.raises(ValidationError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, make_user(), easy.question_id, 0)
        assert exc.value.reason == 'NOT_IN_POOL'

    def test_other_class_cannot_answer(self, make_quiz, make_user):
        quiz = make_quiz(class_type='11B')
        user = make_user(class_type='10A')
        with pytest.raises(AuthorizationError):
            CombatResolver.resolve_answer(quiz.quiz_id, user, quiz.questions[0].question_id, 0)

    def test_hidden_quiz_status_is_not_revealed(self, make_quiz, make_user):
        expired = make_quiz(class_type='11B', deadline=(utcnow() - timedelta(minutes=1)).isoformat())
        inactive = make_quiz(class_type='11B')
        BossQuizService.toggle_quiz(inactive.quiz_id)
        outsider = make_user(class_type='10A')

        for quiz in (expired, inactive):
            with pytest.raises(AuthorizationError):
                CombatResolver.resolve_answer(quiz.quiz_id, outsider, quiz.questions[0].question_id, 0)


class TestConcurrency:

    def test_lost_race_is_retried(self, app, make_quiz, make_user, monkeypatch):
        quiz = make_quiz()
        user = make_user()
        question = quiz.questions[0]
        real_commit = db.session.commit
        calls = {'n': 0}

        def flaky_commit():
            calls['n'] += 1
            if calls['n'] == 1:
                raise StaleDataError('row was updated concurrently')
            return real_commit()

        monkeypatch.setattr(db.session, 'commit', flaky_commit)
        outcome = CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 0)

        assert calls['n'] == 2
        assert outcome.damage == 20
        assert DamageShard.query.count() == 1
        assert ProgressTracker.get(user.user_id, quiz.quiz_id).questions_attempted == 1

    def test_retries_are_bounded(self, app, make_quiz, make_user, monkeypatch):
        quiz = make_quiz()
        user = make_user()
        question = quiz.questions[0]

        def always_stale():
            raise StaleDataError('row was updated concurrently')

        monkeypatch.setattr(db.session, 'commit', always_stale)
        with pytest.raises(ConcurrencyConflictError) as exc:
            CombatResolver.resolve_answer(quiz.quiz_id, user, question.question_id, 0)

        assert exc.value.details == {'transient': True, 'attempts': 3}
        assert exc.value.status_code == 409
        assert DamageShard.query.count() == 0
        assert BossQuizProgress.query.count() == 0

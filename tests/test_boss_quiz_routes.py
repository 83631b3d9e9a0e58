"""
Tests for the boss quiz JSON API.
"""
from datetime import timedelta

from bossarena_app.models import User
from bossarena_app.modules.boss_quiz.logics.question_sequencer import questions_for
from bossarena_app.utils.time_utils import utcnow
from conftest import question_defs

BASE = '/api/boss-quizzes'


def quiz_payload(**overrides):
    data = {
        'boss_name': 'Regex Golem',
        'max_hp': 200,
        'damage_per_correct': 25,
        'reward_xp': 50,
        'reward_flux': 5,
        'deadline': (utcnow() + timedelta(days=2)).isoformat(),
        'modifiers': [{'type': 'SHIELD_WALL', 'value': 1}],
        'questions': question_defs(4),
    }
    data.update(overrides)
    return data


class TestStudentEndpoints:

    def test_requires_login(self, client):
        response = client.get(f'{BASE}/')
        assert response.status_code == 401
        assert response.get_json()['code'] == 'UNAUTHENTICATED'

    def test_lists_only_visible_active_quizzes(self, login, make_user, make_quiz):
        visible = make_quiz(boss_name='Global Boss')
        make_quiz(boss_name='Other Class', class_type='12C')
        make_quiz(boss_name='Expired', deadline=(utcnow() - timedelta(minutes=5)).isoformat())

        client = login(make_user(class_type='10A'))
        data = client.get(f'{BASE}/').get_json()

        assert data['success'] is True
        assert [q['quiz_id'] for q in data['data']] == [visible.quiz_id]
        assert data['data'][0]['status'] == 'ACTIVE'
        assert data['data'][0]['current_hp'] == 100

    def test_hidden_quiz_is_forbidden(self, login, make_user, make_quiz):
        quiz = make_quiz(class_type='12C')
        client = login(make_user(class_type='10A'))
        response = client.get(f'{BASE}/{quiz.quiz_id}')
        assert response.status_code == 403

    def test_unknown_quiz_is_404(self, login, make_user):
        client = login(make_user())
        response = client.get(f'{BASE}/4242')
        assert response.status_code == 404
        assert response.get_json()['code'] == 'NOT_FOUND'

    def test_questions_are_personalized_and_hide_answers(self, login, make_user, make_quiz):
        quiz = make_quiz()
        user = make_user()
        client = login(user)

        data = client.get(f'{BASE}/{quiz.quiz_id}/questions').get_json()['data']

        expected = [q.question_id for q in questions_for(quiz.questions, user.user_id, quiz.quiz_id)]
        assert [q['question_id'] for q in data['questions']] == expected
        assert all('correct_index' not in q for q in data['questions'])
        assert data['next_question_id'] == expected[0]
        assert data['exhausted'] is False

    def test_answer_flow(self, login, make_user, make_quiz):
        quiz = make_quiz()
        user = make_user()
        client = login(user)
        question = quiz.questions[0]
        body = {'question_id': question.question_id, 'choice_index': question.correct_index}

        first = client.post(f'{BASE}/{quiz.quiz_id}/answer', json=body)
        again = client.post(f'{BASE}/{quiz.quiz_id}/answer', json=body)

        assert first.status_code == 200
        assert first.get_json()['data']['damage'] == 20
        assert first.get_json()['data']['boss_hp'] == 80
        assert again.status_code == 200
        assert again.get_json()['data']['already_answered'] is True

        health = client.get(f'{BASE}/{quiz.quiz_id}/health').get_json()['data']
        assert health['current_hp'] == 80
        assert health['aggregate_damage'] == 20

        feed = client.get(f'{BASE}/{quiz.quiz_id}/feed').get_json()['data']
        assert len(feed) == 1
        assert feed[0]['user_name'] == user.username

        progress = client.get(f'{BASE}/{quiz.quiz_id}/progress').get_json()['data']
        assert progress['questions_attempted'] == 1
        assert progress['correct_by_difficulty']['MEDIUM'] == 1

    def test_progress_is_empty_before_first_answer(self, login, make_user, make_quiz):
        quiz = make_quiz()
        client = login(make_user())

        assert client.get(f'{BASE}/{quiz.quiz_id}/progress').get_json()['data'] is None
        health = client.get(f'{BASE}/{quiz.quiz_id}/health').get_json()['data']
        assert health['current_hp'] == 100
        assert health['status'] == 'ACTIVE'

    def test_bad_answer_payload(self, login, make_user, make_quiz):
        quiz = make_quiz()
        client = login(make_user())
        response = client.post(f'{BASE}/{quiz.quiz_id}/answer', json={'choice_index': 1})
        assert response.status_code == 400
        body = response.get_json()
        assert body['code'] == 'VALIDATION_ERROR'
        assert 'question_id' in body['details']['errors']

    def test_knocked_out_is_409(self, login, make_user, make_quiz):
        quiz = make_quiz(boss_damage=100)
        client = login(make_user())
        qs = quiz.questions
        client.post(f'{BASE}/{quiz.quiz_id}/answer', json={'question_id': qs[0].question_id, 'choice_index': 3})

        response = client.post(f'{BASE}/{quiz.quiz_id}/answer',
                               json={'question_id': qs[1].question_id, 'choice_index': 0})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'KNOCKED_OUT'

    def test_leaderboard_orders_by_damage(self, login, make_user, make_quiz):
        quiz = make_quiz(max_hp=1000)
        strong, weak = make_user('strong'), make_user('weak')

        login(weak).post(f'{BASE}/{quiz.quiz_id}/answer',
                         json={'question_id': quiz.questions[0].question_id, 'choice_index': 0})
        client = login(strong)
        for question in quiz.questions[:2]:
            client.post(f'{BASE}/{quiz.quiz_id}/answer',
                        json={'question_id': question.question_id, 'choice_index': 0})

        rows = client.get(f'{BASE}/{quiz.quiz_id}/leaderboard').get_json()['data']
        assert [(r['rank'], r['username'], r['total_damage']) for r in rows] == [
            (1, 'strong', 40), (2, 'weak', 20)
        ]


class TestAdminEndpoints:

    def test_students_cannot_manage(self, login, make_user):
        client = login(make_user())
        response = client.post(f'{BASE}/', json=quiz_payload())
        assert response.status_code == 403
        assert client.get(f'{BASE}/admin/all').status_code == 403

    def test_create_and_list(self, login, make_user):
        client = login(make_user('coach', role=User.ROLE_ADMIN))

        response = client.post(f'{BASE}/', json=quiz_payload())
        assert response.status_code == 201
        created = response.get_json()['data']
        assert created['boss_name'] == 'Regex Golem'
        assert created['question_count'] == 4
        assert created['modifiers'][0]['label'] == 'Shield Wall x1'

        listing = client.get(f'{BASE}/admin/all').get_json()['data']
        assert [q['quiz_id'] for q in listing] == [created['quiz_id']]

    def test_invalid_definition_reports_fields(self, login, make_user):
        client = login(make_user('coach', role=User.ROLE_ADMIN))
        response = client.post(f'{BASE}/', json=quiz_payload(
            max_hp=0,
            modifiers=[{'type': 'NOPE'}],
        ))
        assert response.status_code == 400
        errors = response.get_json()['details']['errors']
        assert 'max_hp' in errors
        assert 'modifiers' in errors

    def test_update_toggle_and_delete(self, login, make_user):
        client = login(make_user('coach', role=User.ROLE_ADMIN))
        quiz_id = client.post(f'{BASE}/', json=quiz_payload()).get_json()['data']['quiz_id']

        updated = client.put(f'{BASE}/{quiz_id}', json=quiz_payload(boss_name='Regex Golem II', max_hp=300))
        assert updated.status_code == 200
        assert updated.get_json()['data']['max_hp'] == 300

        toggled = client.post(f'{BASE}/{quiz_id}/toggle').get_json()['data']
        assert toggled['is_active'] is False

        assert client.delete(f'{BASE}/{quiz_id}').status_code == 200
        assert client.get(f'{BASE}/{quiz_id}').status_code == 404

    def test_cannot_delete_quiz_in_progress(self, login, make_user, make_quiz):
        quiz = make_quiz()
        student = make_user()
        login(student).post(f'{BASE}/{quiz.quiz_id}/answer',
                            json={'question_id': quiz.questions[0].question_id, 'choice_index': 0})

        client = login(make_user('coach', role=User.ROLE_ADMIN))
        response = client.delete(f'{BASE}/{quiz.quiz_id}')
        assert response.status_code == 400
        assert response.get_json()['details']['reason'] == 'IN_PROGRESS'

    def test_pool_frozen_after_damage(self, login, make_user, make_quiz):
        quiz = make_quiz()
        login(make_user()).post(f'{BASE}/{quiz.quiz_id}/answer',
                                json={'question_id': quiz.questions[0].question_id, 'choice_index': 0})

        client = login(make_user('coach', role=User.ROLE_ADMIN))
        response = client.put(f'{BASE}/{quiz.quiz_id}', json=quiz_payload(max_hp=100, questions=question_defs(2)))
        assert response.status_code == 400
        assert response.get_json()['details']['reason'] == 'HAS_DAMAGE'

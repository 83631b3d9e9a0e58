from functools import wraps

from flask import jsonify, request
from flask_login import current_user, login_required
from flask_wtf.csrf import generate_csrf
from pydantic import ValidationError as PydanticValidationError

from bossarena_app.core.error_handlers import AuthorizationError, ValidationError, success_response
from . import boss_quiz_api_bp
from .interface import answer_boss_quiz, get_boss_hp, get_progress
from .logics.modifier_engine import ModifierError
from .logics.question_sequencer import next_question, questions_for
from .logics.ranking_logic import Contribution, leaderboard_rows
from .schemas import (
    AnswerPayload,
    FeedEntrySchema,
    LeaderboardEntrySchema,
    QuestionViewSchema,
)
from .services import BossQuizService, DamageLedger, ProgressTracker

question_view_schema = QuestionViewSchema(many=True)
feed_schema = FeedEntrySchema(many=True)
leaderboard_schema = LeaderboardEntrySchema(many=True)


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            raise AuthorizationError('Admin access required')
        return f(*args, **kwargs)
    return decorated_function


def _visible_quiz(quiz_id):
    quiz = BossQuizService.get_quiz(quiz_id)
    if not current_user.is_admin and not quiz.is_visible_to(current_user.class_type, current_user.section):
        raise AuthorizationError('This boss quiz is not available for your class')
    return quiz


# ----------------------------------------------------------------------
# Student endpoints
# ----------------------------------------------------------------------

@boss_quiz_api_bp.route('/csrf-token', methods=['GET'])
@login_required
def get_csrf_token():
    """Token to send back in the X-CSRFToken header on POST / PUT / DELETE."""
    return jsonify(success_response({'csrf_token': generate_csrf()}))


@boss_quiz_api_bp.route('/', methods=['GET'])
@login_required
def list_boss_quizzes():
    """Các boss đang hoạt động mà người dùng hiện tại nhìn thấy."""
    quizzes = BossQuizService.list_visible(current_user.class_type, current_user.section)
    return jsonify(success_response([q.to_dict() for q in quizzes]))


@boss_quiz_api_bp.route('/<int:quiz_id>', methods=['GET'])
@login_required
def get_boss_quiz(quiz_id):
    quiz = _visible_quiz(quiz_id)
    return jsonify(success_response(BossQuizService.to_dto(quiz).to_dict()))


@boss_quiz_api_bp.route('/<int:quiz_id>/health', methods=['GET'])
@login_required
def get_boss_health(quiz_id):
    quiz = _visible_quiz(quiz_id)
    aggregate = DamageLedger.aggregate_damage(quiz.quiz_id)
    return jsonify(success_response({
        'quiz_id': quiz.quiz_id,
        'max_hp': quiz.max_hp,
        'current_hp': get_boss_hp(quiz.quiz_id),
        'aggregate_damage': aggregate,
        'status': quiz.status(aggregate),
    }))


@boss_quiz_api_bp.route('/<int:quiz_id>/feed', methods=['GET'])
@login_required
def get_battle_feed(quiz_id):
    quiz = _visible_quiz(quiz_id)
    limit = request.args.get('limit', type=int)
    shards = DamageLedger.recent_shards(quiz.quiz_id, limit)
    return jsonify(success_response(feed_schema.dump(shards)))


@boss_quiz_api_bp.route('/<int:quiz_id>/progress', methods=['GET'])
@login_required
def get_my_progress(quiz_id):
    quiz = _visible_quiz(quiz_id)
    progress = get_progress(current_user.user_id, quiz.quiz_id)
    data = progress.to_dict() if progress else None
    return jsonify(success_response(data))


@boss_quiz_api_bp.route('/<int:quiz_id>/questions', methods=['GET'])
@login_required
def get_my_questions(quiz_id):
    """Bộ câu hỏi theo thứ tự riêng của người dùng (không lộ đáp án)."""
    quiz = _visible_quiz(quiz_id)
    try:
        modifiers = quiz.modifier_list
    except ModifierError as exc:
        raise ValidationError(f'Invalid modifier configuration: {exc}', reason='BAD_MODIFIER') from exc

    sequence = questions_for(quiz.questions, current_user.user_id, quiz.quiz_id, modifiers)
    progress = ProgressTracker.get(current_user.user_id, quiz.quiz_id)
    answered = list(progress.answered_question_ids or []) if progress else []
    upcoming = next_question(sequence, answered)

    return jsonify(success_response({
        'questions': question_view_schema.dump(sequence),
        'answered_question_ids': answered,
        'next_question_id': upcoming.question_id if upcoming else None,
        'exhausted': upcoming is None,
    }))


@boss_quiz_api_bp.route('/<int:quiz_id>/answer', methods=['POST'])
@login_required
def submit_answer(quiz_id):
    try:
        payload = AnswerPayload(**(request.get_json(silent=True) or {}))
    except PydanticValidationError as exc:
        errors = {'.'.join(str(p) for p in e['loc']): e['msg'] for e in exc.errors()}
        raise ValidationError('Invalid answer payload', errors=errors) from exc

    outcome = answer_boss_quiz(quiz_id, current_user, payload.question_id, payload.choice_index)
    return jsonify(success_response(outcome.to_dict()))


@boss_quiz_api_bp.route('/<int:quiz_id>/leaderboard', methods=['GET'])
@login_required
def get_quiz_leaderboard(quiz_id):
    quiz = _visible_quiz(quiz_id)
    progress_rows = {p.user_id: p for p in ProgressTracker.list_for_quiz(quiz.quiz_id)}
    ordered = leaderboard_rows([
        Contribution(
            user_id=p.user_id,
            total_damage=p.total_damage_dealt,
            questions_attempted=p.questions_attempted,
            questions_correct=p.questions_correct,
            reached_at=p.damage_reached_at,
        )
        for p in progress_rows.values()
    ])

    rows = []
    for index, contribution in enumerate(ordered, start=1):
        progress = progress_rows[contribution.user_id]
        rows.append({
            'rank': index,
            'user_id': progress.user_id,
            'username': progress.user.username if progress.user else None,
            'total_damage': progress.total_damage_dealt,
            'critical_hits': progress.critical_hits,
            'questions_attempted': progress.questions_attempted,
            'questions_correct': progress.questions_correct,
            'participated': progress.participated,
            'knocked_out': progress.knocked_out,
            'reward_multiplier': progress.reward_multiplier,
            'reward_xp': progress.reward_xp,
            'reward_flux': progress.reward_flux,
        })

    return jsonify(success_response(leaderboard_schema.dump(rows)))


# ----------------------------------------------------------------------
# Admin endpoints
# ----------------------------------------------------------------------

@boss_quiz_api_bp.route('/admin/all', methods=['GET'])
@login_required
@admin_required
def admin_list_boss_quizzes():
    return jsonify(success_response([q.to_dict() for q in BossQuizService.list_all()]))


@boss_quiz_api_bp.route('/', methods=['POST'])
@login_required
@admin_required
def create_boss_quiz():
    quiz = BossQuizService.create_quiz(request.get_json(silent=True) or {}, created_by=current_user.user_id)
    return jsonify(success_response(BossQuizService.to_dto(quiz).to_dict(), 'Boss quiz created')), 201


@boss_quiz_api_bp.route('/<int:quiz_id>', methods=['PUT'])
@login_required
@admin_required
def update_boss_quiz(quiz_id):
    quiz = BossQuizService.update_quiz(quiz_id, request.get_json(silent=True) or {})
    return jsonify(success_response(BossQuizService.to_dto(quiz).to_dict(), 'Boss quiz updated'))


@boss_quiz_api_bp.route('/<int:quiz_id>/toggle', methods=['POST'])
@login_required
@admin_required
def toggle_boss_quiz(quiz_id):
    quiz = BossQuizService.toggle_quiz(quiz_id)
    return jsonify(success_response({'quiz_id': quiz.quiz_id, 'is_active': quiz.is_active}))


@boss_quiz_api_bp.route('/<int:quiz_id>', methods=['DELETE'])
@login_required
@admin_required
def delete_boss_quiz(quiz_id):
    BossQuizService.delete_quiz(quiz_id)
    return jsonify(success_response(message='Boss quiz deleted'))

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from livequiz import repository
from livequiz.entities import ENDED, LOBBY, QUESTION_LIVE, RESULTS, Game
from livequiz.errors import ForbiddenError, ValidationError
from livequiz.services.games import controller
from livequiz.services.games.leaderboard import get_player_rank, get_top_players, score_distribution
from livequiz.services.games.timer import remaining

games = Blueprint('games', __name__)


def _host_game(game_id: str) -> Game:
    game = repository.get_game(game_id)
    if game.host_id != current_user.uid:
        raise ForbiddenError('Only the host may control this game')
    return game


def _int_field(data: dict, name: str, required: bool = True):
    value = data.get(name)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{name} must be an integer')
    return value


def _state_payload(game: Game) -> dict:
    quiz = repository.get_quiz(game.quiz_id)
    payload = game.to_dict()
    payload['is_host'] = game.host_id == current_user.uid
    payload['question_count'] = len(quiz.questions)
    payload['players'] = [p.to_dict() for p in repository.list_players(game.id)]
    payload['remaining'] = remaining(game.question_end_time) if game.phase == QUESTION_LIVE else 0
    payload['current_question'] = None
    payload['answer_count'] = 0
    index = game.current_question_index
    if game.phase in (QUESTION_LIVE, RESULTS) and index < len(quiz.questions):
        payload['current_question'] = quiz.questions[index].to_dict(reveal=game.phase == RESULTS)
        payload['answer_count'] = len(repository.question_answers(game.id, index))
        mine = repository.get_answer(game.id, index, current_user.uid)
        payload['my_answer'] = mine.to_dict() if mine else None
    if game.settings.show_leaderboard or game.phase == ENDED:
        payload['leaderboard'] = [e.to_dict() for e in repository.get_leaderboard(game.id)]
    return payload


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    data = request.get_json(silent=True) or {}
    quiz_id = data.get('quiz_id')
    if not quiz_id:
        return jsonify({'error': 'quiz_id is required'}), 400
    game = controller.create_game(str(quiz_id), current_user.uid, data.get('settings'))
    return jsonify(game.to_dict()), 201


@games.route('/code/<string:join_code>', methods=['GET'])
@login_required
def find_by_code(join_code):
    game = controller.find_game_by_join_code(join_code)
    return jsonify({'id': game.id, 'join_code': game.join_code, 'phase': game.phase})


@games.route('/<string:game_id>/join', methods=['POST'])
@login_required
def join_game(game_id):
    data = request.get_json(silent=True) or {}
    player = controller.join_game(
        game_id,
        current_user.uid,
        name=data.get('name'),
        display_name=current_user.display_name or current_user.username,
    )
    return jsonify(player.to_dict()), 201


@games.route('/<string:game_id>/state', methods=['GET'])
@login_required
def get_game_state(game_id):
    return jsonify(_state_payload(repository.get_game(game_id)))


@games.route('/<string:game_id>/start', methods=['POST'])
@login_required
def start_game(game_id):
    game = _host_game(game_id)
    if game.phase == LOBBY:
        min_players = int(current_app.config.get('MIN_PLAYERS', 1))
        if len(repository.list_players(game_id)) < min_players:
            return jsonify({'error': f'At least {min_players} player(s) must join before starting'}), 400
    return jsonify(_state_payload(controller.start_game(game_id)))


@games.route('/<string:game_id>/force-results', methods=['POST'])
@login_required
def force_results(game_id):
    _host_game(game_id)
    return jsonify(_state_payload(controller.force_results(game_id)))


@games.route('/<string:game_id>/advance', methods=['POST'])
@login_required
def advance(game_id):
    _host_game(game_id)
    data = request.get_json(silent=True) or {}
    from_index = _int_field(data, 'question_index', required=False)
    return jsonify(_state_payload(controller.advance(game_id, from_index=from_index)))


@games.route('/<string:game_id>/answers', methods=['POST'])
@login_required
def submit_answer(game_id):
    data = request.get_json(silent=True) or {}
    answer = controller.submit_answer(
        game_id,
        current_user.uid,
        _int_field(data, 'question_index'),
        _int_field(data, 'selected_option'),
    )
    # Correctness stays hidden until results
    return jsonify({
        'question_index': answer.question_index,
        'selected_option': answer.selected_option,
        'answered_at': answer.answered_at,
    }), 201


@games.route('/<string:game_id>/leaderboard', methods=['GET'])
@login_required
def get_leaderboard(game_id):
    repository.get_game(game_id)
    entries = repository.get_leaderboard(game_id)
    return jsonify({
        'entries': [e.to_dict() for e in entries],
        'top': [e.to_dict() for e in get_top_players(entries)],
        'distribution': score_distribution(entries),
        'my_rank': get_player_rank(entries, current_user.uid),
    })

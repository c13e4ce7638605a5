"""Game phase controller: lobby -> questionLive -> results -> ... -> ended.

Every phase write is a compare-and-set on ``(phase, current_question_index)``
so a host action racing the timer can never move a game backwards. Repeated
host clicks that find the game already in the target state return it
unchanged instead of raising.
"""

import time
from typing import Optional

from flask import current_app

from livequiz import repository
from livequiz.entities import (
    ENDED, LOBBY, QUESTION_LIVE, RESULTS,
    Answer, Game, GameSettings, Player, generate_join_code, new_id,
)
from livequiz.errors import AlreadyAnsweredError, InvalidTransitionError, NotFoundError, ValidationError
from .scoring import calculate_and_update_scores
from .timer import get_question_timer

MAX_NAME_LENGTH = 64


def create_game(quiz_id: str, host_id: str, settings: Optional[dict] = None) -> Game:
    quiz = repository.get_quiz(quiz_id)
    if not quiz.questions:
        raise ValidationError('Quiz has no questions')
    cfg = current_app.config
    game = Game(
        id=new_id(),
        join_code=generate_join_code(int(cfg.get('JOIN_CODE_LENGTH', 6))),
        quiz_id=quiz.id,
        host_id=str(host_id),
        phase=LOBBY,
        current_question_index=0,
        settings=GameSettings.from_doc(settings, default_time_limit=int(cfg.get('QUESTION_TIME_LIMIT_SEC', 30))),
        created_at=time.time(),
    )
    repository.save_game(game)
    current_app.logger.info(f"[game-create] game={game.id} code={game.join_code} quiz={quiz.id} host={game.host_id}")
    return game


def find_game_by_join_code(join_code: str) -> Game:
    code = (join_code or '').strip().upper()
    candidates = [g for g in repository.games_by_join_code(code) if g.phase != ENDED]
    if not candidates:
        raise NotFoundError('Game not found. Check the code.')
    # Codes are not checked for collisions; prefer the newest lobby
    return max(candidates, key=lambda g: g.created_at)


def join_game(game_id: str, user_id: str, name: Optional[str] = None, display_name: Optional[str] = None) -> Player:
    game = repository.get_game(game_id)
    if game.phase == ENDED:
        raise InvalidTransitionError('This game has already ended.')
    existing = repository.get_player(game_id, str(user_id))
    if existing:
        return existing
    player_name = ((name or '').strip() or display_name or 'Player')[:MAX_NAME_LENGTH]
    player = Player(id=str(user_id), name=player_name, joined_at=time.time())
    if not repository.add_player(game_id, player):
        return repository.get_player(game_id, player.id)
    current_app.logger.info(f"[join] game={game_id} player={player.id} name={player.name}")
    return player


def start_game(game_id: str) -> Game:
    game = repository.get_game(game_id)
    if game.phase == QUESTION_LIVE and game.current_question_index == 0:
        return game
    if game.phase != LOBBY:
        raise InvalidTransitionError(f'Cannot start a game in phase {game.phase}')
    quiz = repository.get_quiz(game.quiz_id)
    question = repository.get_question(quiz, 0)
    started = get_question_timer().start(
        game_id,
        question.effective_time_limit(game.settings),
        0,
        changes={'phase': QUESTION_LIVE, 'current_question_index': 0, 'started_at': time.time()},
        expect={'phase': LOBBY},
    )
    if started is None:
        return _raced(game_id, 'start')
    current_app.logger.info(f"[start] game={game_id} questions={len(quiz.questions)}")
    return started


def force_results(game_id: str) -> Game:
    game = repository.get_game(game_id)
    if game.phase == RESULTS:
        return game
    if game.phase != QUESTION_LIVE:
        raise InvalidTransitionError(f'Cannot show results in phase {game.phase}')
    index = game.current_question_index
    calculate_and_update_scores(game_id, index)
    close_question(game_id, index)
    return repository.get_game(game_id)


def close_question(game_id: str, question_index: int) -> bool:
    """Move a live question to results. False when something else got there first."""
    game = repository.update_game(
        game_id,
        {'phase': RESULTS, 'time_left': 0, 'last_timer_update': time.time()},
        expect={'phase': QUESTION_LIVE, 'current_question_index': question_index},
    )
    if game is None:
        current_app.logger.info(f"[results-skip] game={game_id} question={question_index} already closed")
        return False
    current_app.logger.info(f"[results] game={game_id} question={question_index}")
    timer = get_question_timer()
    timer.cancel_question(game_id, question_index)
    if game.settings.auto_progress:
        timer.schedule_advance(game_id, question_index)
    return True


def advance(game_id: str, from_index: Optional[int] = None) -> Game:
    """Next question, or ``ended`` after the last one.

    ``from_index`` is the question the caller saw in results; if the game is
    already past it the call is a repeat and returns the game unchanged.
    """
    game = repository.get_game(game_id)
    if game.phase == ENDED:
        return game
    if from_index is not None and game.current_question_index > from_index:
        return game
    if game.phase != RESULTS:
        raise InvalidTransitionError(f'Cannot advance a game in phase {game.phase}')

    quiz = repository.get_quiz(game.quiz_id)
    timer = get_question_timer()
    index = game.current_question_index
    guard = {'phase': RESULTS, 'current_question_index': index}
    next_index = index + 1

    if next_index >= len(quiz.questions):
        ended = repository.update_game(game_id, {'phase': ENDED, 'ended_at': time.time(), 'time_left': 0}, expect=guard)
        if ended is None:
            return _raced(game_id, 'finish')
        timer.cancel(game_id)
        current_app.logger.info(f"[finish] game={game_id} finished at question={index}")
        return ended

    question = quiz.questions[next_index]
    started = timer.start(
        game_id,
        question.effective_time_limit(game.settings),
        next_index,
        changes={'phase': QUESTION_LIVE, 'current_question_index': next_index},
        expect=guard,
    )
    if started is None:
        return _raced(game_id, 'advance')
    current_app.logger.info(f"[next_question] game={game_id} advance {index} -> {next_index}")
    return started


def submit_answer(game_id: str, player_id: str, question_index: int, selected_option: int) -> Answer:
    game = repository.get_game(game_id)
    if game.phase != QUESTION_LIVE:
        raise InvalidTransitionError('Not accepting answers at this time')
    if game.current_question_index != question_index:
        raise InvalidTransitionError('That question is no longer live')
    if repository.get_player(game_id, str(player_id)) is None:
        raise NotFoundError('You are not a player in this game')
    quiz = repository.get_quiz(game.quiz_id)
    question = repository.get_question(quiz, question_index)
    if isinstance(selected_option, bool) or not isinstance(selected_option, int) \
            or not 0 <= selected_option < len(question.options):
        raise ValidationError('selected_option must index one of the options')

    answer = Answer(
        player_id=str(player_id),
        question_index=question_index,
        selected_option=selected_option,
        answered_at=time.time(),
        is_correct=selected_option == question.correct_answer,
    )
    if not repository.record_answer(game_id, answer):
        raise AlreadyAnsweredError('Already answered this question')
    current_app.logger.info(f"[answer] game={game_id} question={question_index} player={answer.player_id}")
    return answer


def _raced(game_id: str, action: str) -> Game:
    game = repository.get_game(game_id)
    current_app.logger.info(f"[{action}-raced] game={game_id} phase={game.phase} question={game.current_question_index}")
    return game

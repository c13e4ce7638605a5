import math
import time
from typing import Dict, List, Optional

from flask import current_app

from livequiz import repository
from livequiz.entities import LeaderboardEntry, QuestionAwards
from livequiz.errors import NotFoundError
from .leaderboard import build_leaderboard

BASE_POINTS = 100
MAX_TIME_BONUS = 50


def points_for_answer(answered_at: float, question_start_time: Optional[float], time_limit: int) -> int:
    """Base points plus a bonus shrinking linearly from 50 to 0 over the time limit.

    Answers stamped before the question started clamp to the full bonus.
    Without a start time only the base is awarded.
    """
    if question_start_time is None or time_limit <= 0:
        return BASE_POINTS
    elapsed = min(max(answered_at - question_start_time, 0.0), float(time_limit))
    time_ratio = 1 - elapsed / time_limit
    # half-up, not banker's rounding
    return BASE_POINTS + int(math.floor(time_ratio * MAX_TIME_BONUS + 0.5))


def calculate_and_update_scores(game_id: str, question_index: int) -> List[LeaderboardEntry]:
    """Score one question and regenerate the leaderboard.

    Points for the question are written as a full replacement of its awards
    document and every player's score is the sum over all awards documents,
    so repeating the pass for the same question never double-credits.
    Missing game, quiz or question aborts before anything is written.
    """
    try:
        game = repository.get_game(game_id)
        quiz = repository.get_quiz(game.quiz_id)
        question = repository.get_question(quiz, question_index)
    except NotFoundError as exc:
        current_app.logger.error(f"[score-abort] game={game_id} question={question_index} {exc.message}")
        raise

    time_limit = question.effective_time_limit(game.settings)
    start = _question_start(game, question_index)
    answers = repository.question_answers(game_id, question_index)
    players = repository.list_players(game_id)
    roster = {p.id for p in players}

    points: Dict[str, int] = {}
    answered_at: Dict[str, float] = {}
    for answer in answers:
        if answer.player_id not in roster:
            continue
        answered_at[answer.player_id] = answer.answered_at
        if answer.selected_option == question.correct_answer:
            points[answer.player_id] = points_for_answer(answer.answered_at, start, time_limit)

    repository.put_awards(game_id, QuestionAwards(
        question_index=question_index, scored_at=time.time(), points=points, question_start_time=start,
    ))
    entries = _apply_totals(game_id, players, answered_at)
    current_app.logger.info(
        f"[score] game={game_id} question={question_index} answers={len(answers)} correct={len(points)} players={len(players)}"
    )
    return entries


def finalize_game_scores(game_id: str) -> List[LeaderboardEntry]:
    """Rescore every question reached so far and rebuild the leaderboard."""
    game = repository.get_game(game_id)
    entries: List[LeaderboardEntry] = []
    for index in range(game.current_question_index + 1):
        entries = calculate_and_update_scores(game_id, index)
    return entries


def _question_start(game, question_index: int) -> Optional[float]:
    """The game only carries the live question's window; earlier ones keep theirs on the awards."""
    if question_index == game.current_question_index:
        return game.question_start_time
    previous = repository.get_awards(game.id, question_index)
    return previous.question_start_time if previous else None


def _apply_totals(game_id: str, players, answered_at: Dict[str, float]) -> List[LeaderboardEntry]:
    totals: Dict[str, int] = {}
    for awards in repository.list_awards(game_id):
        for player_id, pts in awards.points.items():
            totals[player_id] = totals.get(player_id, 0) + pts

    # Scores first, then the snapshot; a crash in between heals on the next pass
    for player in players:
        partial = {}
        score = totals.get(player.id, 0)
        if score != player.score:
            partial['score'] = score
        last = answered_at.get(player.id)
        if last is not None and (player.last_answered_at is None or last > player.last_answered_at):
            partial['last_answered_at'] = last
        if partial:
            repository.update_player(game_id, player.id, partial)
        player.score = score
        if 'last_answered_at' in partial:
            player.last_answered_at = last

    entries = build_leaderboard(players)
    repository.put_leaderboard(game_id, entries)
    return entries

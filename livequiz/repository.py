"""Data access for quizzes, games, rosters, answer ledgers and leaderboards.

Collection layout::

    quizzes/<quiz_id>
    games/<game_id>
    games/<game_id>/players/<player_id>
    games/<game_id>/answers/<question_index>:<player_id>
    games/<game_id>/awards/question-<question_index>
    games/<game_id>/leaderboard/current
"""

import time
from typing import List, Optional

from flask import current_app

from livequiz.entities import (
    ENDED, Answer, Game, LeaderboardEntry, Player, Question, QuestionAwards, Quiz,
    answer_key, awards_key,
)
from livequiz.errors import NotFoundError, ValidationError
from livequiz.store import store

QUIZZES = 'quizzes'
GAMES = 'games'
LEADERBOARD_KEY = 'current'


def players_collection(game_id: str) -> str:
    return f"{GAMES}/{game_id}/players"


def answers_collection(game_id: str) -> str:
    return f"{GAMES}/{game_id}/answers"


def awards_collection(game_id: str) -> str:
    return f"{GAMES}/{game_id}/awards"


def leaderboard_collection(game_id: str) -> str:
    return f"{GAMES}/{game_id}/leaderboard"


# ---- quizzes ----

def get_quiz(quiz_id: str) -> Quiz:
    doc = store.get(QUIZZES, quiz_id)
    if doc is None:
        raise NotFoundError('Quiz not found')
    return Quiz.from_doc(doc, key=quiz_id)


def save_quiz(quiz: Quiz) -> Quiz:
    store.put(QUIZZES, quiz.id, quiz.to_dict())
    return quiz


def quizzes_by_creator(user_id: str) -> List[Quiz]:
    rows = store.query(QUIZZES, lambda d: str(d.get('created_by')) == user_id)
    return [Quiz.from_doc(doc, key=key) for key, doc in rows]


def delete_quiz(quiz_id: str) -> None:
    store.delete(QUIZZES, quiz_id)


def get_question(quiz: Quiz, index: int) -> Question:
    if not 0 <= index < len(quiz.questions):
        raise NotFoundError(f'Question {index} not found in quiz {quiz.id}')
    return quiz.questions[index]


# ---- games ----

def get_game(game_id: str) -> Game:
    doc = store.get(GAMES, game_id)
    if doc is None:
        raise NotFoundError('Game not found')
    return Game.from_doc(doc, key=game_id)


def find_game(game_id: str) -> Optional[Game]:
    doc = store.get(GAMES, game_id)
    return Game.from_doc(doc, key=game_id) if doc is not None else None


def save_game(game: Game) -> Game:
    store.put(GAMES, game.id, game.to_dict())
    return game


def update_game(game_id: str, partial: dict, expect: Optional[dict] = None) -> Optional[Game]:
    """Partial update; returns None when ``expect`` no longer holds."""
    doc = store.update(GAMES, game_id, partial, expect=expect)
    return Game.from_doc(doc, key=game_id) if doc is not None else None


def games_in_play(quiz_id: str) -> List[Game]:
    """Games built on ``quiz_id`` that have not ended yet."""
    rows = store.query(GAMES, lambda d: d.get('quiz_id') == quiz_id and d.get('phase') != ENDED)
    return [Game.from_doc(doc, key=key) for key, doc in rows]


def games_by_join_code(join_code: str) -> List[Game]:
    rows = store.query(GAMES, lambda d: d.get('join_code') == join_code)
    return [Game.from_doc(doc, key=key) for key, doc in rows]


# ---- roster ----

def list_players(game_id: str) -> List[Player]:
    """Players in join order. Malformed rows are skipped, not propagated."""
    players = []
    for key, doc in store.query(players_collection(game_id)):
        try:
            players.append(Player.from_doc(doc, key=key))
        except ValidationError as exc:
            current_app.logger.warning(f"[roster-skip] game={game_id} player={key} {exc.message}")
    return players


def get_player(game_id: str, player_id: str) -> Optional[Player]:
    doc = store.get(players_collection(game_id), player_id)
    return Player.from_doc(doc, key=player_id) if doc is not None else None


def add_player(game_id: str, player: Player) -> bool:
    return store.create(players_collection(game_id), player.id, player.to_dict())


def update_player(game_id: str, player_id: str, partial: dict) -> None:
    store.update(players_collection(game_id), player_id, partial)


# ---- answer ledger ----

def record_answer(game_id: str, answer: Answer) -> bool:
    """Write-once. False when the player already answered this question."""
    return store.create(
        answers_collection(game_id),
        answer_key(answer.question_index, answer.player_id),
        answer.to_dict(),
    )


def get_answer(game_id: str, question_index: int, player_id: str) -> Optional[Answer]:
    doc = store.get(answers_collection(game_id), answer_key(question_index, player_id))
    return Answer.from_doc(doc) if doc is not None else None


def question_answers(game_id: str, question_index: int) -> List[Answer]:
    answers = []
    rows = store.query(answers_collection(game_id), lambda d: d.get('question_index') == question_index)
    for key, doc in rows:
        try:
            answers.append(Answer.from_doc(doc))
        except ValidationError as exc:
            current_app.logger.warning(f"[ledger-skip] game={game_id} answer={key} {exc.message}")
    return answers


# ---- awards and leaderboard ----

def put_awards(game_id: str, awards: QuestionAwards) -> None:
    store.put(awards_collection(game_id), awards_key(awards.question_index), awards.to_dict())


def get_awards(game_id: str, question_index: int) -> Optional[QuestionAwards]:
    doc = store.get(awards_collection(game_id), awards_key(question_index))
    return QuestionAwards.from_doc(doc) if doc is not None else None


def list_awards(game_id: str) -> List[QuestionAwards]:
    return [QuestionAwards.from_doc(doc) for _, doc in store.query(awards_collection(game_id))]


def put_leaderboard(game_id: str, entries: List[LeaderboardEntry]) -> None:
    store.put(leaderboard_collection(game_id), LEADERBOARD_KEY, {
        'entries': [e.to_dict() for e in entries],
        'updated_at': time.time(),
    })


def get_leaderboard(game_id: str) -> List[LeaderboardEntry]:
    doc = store.get(leaderboard_collection(game_id), LEADERBOARD_KEY)
    if not doc:
        return []
    return [LeaderboardEntry.from_doc(e) for e in doc.get('entries') or []]

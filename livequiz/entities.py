"""Typed views over store documents.

Each entity decodes a raw document with ``from_doc``, rejecting missing or
mistyped required fields with ``ValidationError`` and defaulting optional
ones, and encodes back with ``to_dict``. Nothing downstream of the store sees
an untyped document.
"""

import random
import string
import uuid
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from livequiz.errors import ValidationError

LOBBY = 'lobby'
QUESTION_LIVE = 'questionLive'
RESULTS = 'results'
ENDED = 'ended'
PHASES = (LOBBY, QUESTION_LIVE, RESULTS, ENDED)

OPTION_COUNT = 4
DEFAULT_TIME_LIMIT = 30

_NUMBER = (int, float)


def new_id() -> str:
    return uuid.uuid4().hex


def generate_join_code(length: int = 6) -> str:
    """Short uppercase alphanumeric code. No collision check against live games."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def _field(doc: dict, name: str, kinds: tuple, entity: str, required: bool = True, default=None):
    value = doc.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{entity} is missing '{name}'")
        return default
    # bool is an int subclass; only accept it where asked for
    if (isinstance(value, bool) and bool not in kinds) or not isinstance(value, kinds):
        raise ValidationError(f"{entity} field '{name}' has an invalid value")
    return value


def _as_doc(doc, entity: str) -> dict:
    if not isinstance(doc, dict):
        raise ValidationError(f"{entity} must be an object")
    return doc


@dataclass
class GameSettings:
    question_time_limit: int = DEFAULT_TIME_LIMIT
    show_leaderboard: bool = True
    auto_progress: bool = False

    @classmethod
    def from_doc(cls, doc: Optional[dict], default_time_limit: int = DEFAULT_TIME_LIMIT) -> 'GameSettings':
        doc = _as_doc(doc or {}, 'Game settings')
        limit = _field(doc, 'question_time_limit', (int,), 'Game settings', required=False, default=default_time_limit)
        if limit <= 0:
            raise ValidationError('question_time_limit must be positive')
        return cls(
            question_time_limit=limit,
            show_leaderboard=_field(doc, 'show_leaderboard', (bool,), 'Game settings', required=False, default=True),
            auto_progress=_field(doc, 'auto_progress', (bool,), 'Game settings', required=False, default=False),
        )


@dataclass
class Question:
    """Multiple-choice question with exactly four options."""

    id: str
    text: str
    options: List[str]
    correct_answer: int
    time_limit: Optional[int] = None

    @classmethod
    def from_doc(cls, doc) -> 'Question':
        doc = _as_doc(doc, 'Question')
        text = _field(doc, 'text', (str,), 'Question')
        if not text.strip():
            raise ValidationError('Question text is required')
        options = _field(doc, 'options', (list,), 'Question')
        if len(options) != OPTION_COUNT or not all(isinstance(o, str) and o.strip() for o in options):
            raise ValidationError(f'A question needs exactly {OPTION_COUNT} non-empty options')
        correct = _field(doc, 'correct_answer', (int,), 'Question')
        if not 0 <= correct < len(options):
            raise ValidationError('correct_answer must index one of the options')
        time_limit = _field(doc, 'time_limit', (int,), 'Question', required=False)
        if time_limit is not None and time_limit <= 0:
            raise ValidationError('time_limit must be positive')
        return cls(
            id=str(doc.get('id') or new_id()),
            text=text,
            options=list(options),
            correct_answer=correct,
            time_limit=time_limit,
        )

    def effective_time_limit(self, settings: GameSettings) -> int:
        return self.time_limit or settings.question_time_limit

    def to_dict(self, reveal: bool = True) -> dict:
        data = asdict(self)
        if not reveal:
            data.pop('correct_answer')
        return data


@dataclass
class Quiz:
    id: str
    title: str
    questions: List[Question]
    created_by: str
    created_at: float
    updated_at: float
    description: Optional[str] = None

    @classmethod
    def from_doc(cls, doc, key: Optional[str] = None) -> 'Quiz':
        doc = _as_doc(doc, 'Quiz')
        title = _field(doc, 'title', (str,), 'Quiz')
        if not title.strip():
            raise ValidationError('Quiz title is required')
        raw_questions = _field(doc, 'questions', (list,), 'Quiz', required=False, default=[])
        return cls(
            id=str(key or _field(doc, 'id', (str,), 'Quiz')),
            title=title.strip(),
            description=_field(doc, 'description', (str,), 'Quiz', required=False),
            questions=[Question.from_doc(q) for q in raw_questions],
            created_by=str(_field(doc, 'created_by', (str, int), 'Quiz')),
            created_at=_field(doc, 'created_at', _NUMBER, 'Quiz', required=False, default=0.0),
            updated_at=_field(doc, 'updated_at', _NUMBER, 'Quiz', required=False, default=0.0),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Game:
    id: str
    join_code: str
    quiz_id: str
    host_id: str
    phase: str
    current_question_index: int
    settings: GameSettings
    created_at: float
    question_start_time: Optional[float] = None
    question_end_time: Optional[float] = None
    time_left: Optional[int] = None
    last_timer_update: Optional[float] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    @classmethod
    def from_doc(cls, doc, key: Optional[str] = None) -> 'Game':
        doc = _as_doc(doc, 'Game')
        phase = _field(doc, 'phase', (str,), 'Game')
        if phase not in PHASES:
            raise ValidationError(f"Unknown game phase '{phase}'")
        index = _field(doc, 'current_question_index', (int,), 'Game')
        if index < 0:
            raise ValidationError('current_question_index must not be negative')
        return cls(
            id=str(key or _field(doc, 'id', (str,), 'Game')),
            join_code=_field(doc, 'join_code', (str,), 'Game'),
            quiz_id=str(_field(doc, 'quiz_id', (str,), 'Game')),
            host_id=str(_field(doc, 'host_id', (str, int), 'Game')),
            phase=phase,
            current_question_index=index,
            settings=GameSettings.from_doc(doc.get('settings')),
            created_at=_field(doc, 'created_at', _NUMBER, 'Game', required=False, default=0.0),
            question_start_time=_field(doc, 'question_start_time', _NUMBER, 'Game', required=False),
            question_end_time=_field(doc, 'question_end_time', _NUMBER, 'Game', required=False),
            time_left=_field(doc, 'time_left', (int,), 'Game', required=False),
            last_timer_update=_field(doc, 'last_timer_update', _NUMBER, 'Game', required=False),
            started_at=_field(doc, 'started_at', _NUMBER, 'Game', required=False),
            ended_at=_field(doc, 'ended_at', _NUMBER, 'Game', required=False),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Player:
    id: str
    name: str
    joined_at: float
    score: int = 0
    last_answered_at: Optional[float] = None

    @classmethod
    def from_doc(cls, doc, key: Optional[str] = None) -> 'Player':
        doc = _as_doc(doc, 'Player')
        score = _field(doc, 'score', (int,), 'Player', required=False, default=0)
        if score < 0:
            raise ValidationError('Player score must not be negative')
        return cls(
            id=str(key or _field(doc, 'id', (str,), 'Player')),
            name=_field(doc, 'name', (str,), 'Player'),
            joined_at=_field(doc, 'joined_at', _NUMBER, 'Player', required=False, default=0.0),
            score=score,
            last_answered_at=_field(doc, 'last_answered_at', _NUMBER, 'Player', required=False),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def answer_key(question_index: int, player_id: str) -> str:
    return f"{question_index}:{player_id}"


@dataclass
class Answer:
    player_id: str
    question_index: int
    selected_option: int
    answered_at: float
    is_correct: bool = False

    @classmethod
    def from_doc(cls, doc) -> 'Answer':
        doc = _as_doc(doc, 'Answer')
        return cls(
            player_id=str(_field(doc, 'player_id', (str,), 'Answer')),
            question_index=_field(doc, 'question_index', (int,), 'Answer'),
            selected_option=_field(doc, 'selected_option', (int,), 'Answer'),
            answered_at=_field(doc, 'answered_at', _NUMBER, 'Answer'),
            is_correct=_field(doc, 'is_correct', (bool,), 'Answer', required=False, default=False),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def awards_key(question_index: int) -> str:
    return f"question-{question_index}"


@dataclass
class QuestionAwards:
    """Points granted by the last scoring pass of one question."""

    question_index: int
    scored_at: float
    points: Dict[str, int] = field(default_factory=dict)
    question_start_time: Optional[float] = None

    @classmethod
    def from_doc(cls, doc) -> 'QuestionAwards':
        doc = _as_doc(doc, 'Question awards')
        points = _field(doc, 'points', (dict,), 'Question awards', required=False, default={})
        return cls(
            question_index=_field(doc, 'question_index', (int,), 'Question awards'),
            scored_at=_field(doc, 'scored_at', _NUMBER, 'Question awards', required=False, default=0.0),
            points={str(pid): int(pts) for pid, pts in points.items()},
            question_start_time=_field(doc, 'question_start_time', _NUMBER, 'Question awards', required=False),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LeaderboardEntry:
    player_id: str
    player_name: str
    score: int
    rank: int

    @classmethod
    def from_doc(cls, doc) -> 'LeaderboardEntry':
        doc = _as_doc(doc, 'Leaderboard entry')
        return cls(
            player_id=str(_field(doc, 'player_id', (str,), 'Leaderboard entry')),
            player_name=_field(doc, 'player_name', (str,), 'Leaderboard entry'),
            score=_field(doc, 'score', (int,), 'Leaderboard entry'),
            rank=_field(doc, 'rank', (int,), 'Leaderboard entry'),
        )

    def to_dict(self) -> dict:
        return asdict(self)

import time

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from livequiz import repository
from livequiz.entities import Quiz, new_id
from livequiz.errors import ForbiddenError, InvalidTransitionError

quizzes = Blueprint('quizzes', __name__)


def _owned_quiz(quiz_id: str) -> Quiz:
    quiz = repository.get_quiz(quiz_id)
    if quiz.created_by != current_user.uid:
        raise ForbiddenError('Only the quiz author may see or change this quiz')
    return quiz


def _unlocked_quiz(quiz_id: str) -> Quiz:
    """Questions are frozen while any game built on the quiz has not ended."""
    quiz = _owned_quiz(quiz_id)
    if repository.games_in_play(quiz.id):
        raise InvalidTransitionError('Quiz is in use by a game that has not ended')
    return quiz


@quizzes.route('', methods=['POST'])
@login_required
def create_quiz():
    data = request.get_json(silent=True) or {}
    now = time.time()
    quiz = Quiz.from_doc({
        'title': data.get('title'),
        'description': data.get('description'),
        'questions': data.get('questions') or [],
        'created_by': current_user.uid,
        'created_at': now,
        'updated_at': now,
    }, key=new_id())
    repository.save_quiz(quiz)
    return jsonify(quiz.to_dict()), 201


@quizzes.route('', methods=['GET'])
@login_required
def list_quizzes():
    return jsonify([q.to_dict() for q in repository.quizzes_by_creator(current_user.uid)])


@quizzes.route('/<string:quiz_id>', methods=['GET'])
@login_required
def get_quiz(quiz_id):
    return jsonify(_owned_quiz(quiz_id).to_dict())


@quizzes.route('/<string:quiz_id>', methods=['PUT'])
@login_required
def update_quiz(quiz_id):
    quiz = _unlocked_quiz(quiz_id)
    data = request.get_json(silent=True) or {}
    merged = quiz.to_dict()
    for field in ('title', 'description', 'questions'):
        if field in data:
            merged[field] = data[field]
    merged['updated_at'] = time.time()
    updated = Quiz.from_doc(merged, key=quiz.id)
    repository.save_quiz(updated)
    return jsonify(updated.to_dict())


@quizzes.route('/<string:quiz_id>', methods=['DELETE'])
@login_required
def delete_quiz(quiz_id):
    _unlocked_quiz(quiz_id)
    repository.delete_quiz(quiz_id)
    return jsonify({'message': 'Quiz deleted'})

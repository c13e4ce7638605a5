import pytest

from livequiz import repository, socketio
from livequiz.services.games import controller


def _events(sio, name):
    return [pkt['args'][0] for pkt in sio.get_received('/ws') if pkt['name'] == name]


@pytest.fixture()
def hosted_game(flask_app, make_user, make_quiz, make_question, add_player):
    host_client, host_id = make_user('host', 'Quiz Host')
    with flask_app.app_context():
        quiz = make_quiz([make_question(time_limit=30)], created_by=host_id)
        game = controller.create_game(quiz.id, host_id)
        add_player(game.id, 'alice')
    return host_client, game


@pytest.fixture()
def connect(flask_app):
    """Open a /ws socket sharing the session cookie of an HTTP test client."""
    opened = []

    def _connect(http_client):
        sio = socketio.test_client(flask_app, flask_test_client=http_client, namespace='/ws')
        sio.get_received('/ws')
        opened.append(sio)
        return sio

    yield _connect
    for sio in opened:
        if sio.is_connected('/ws'):
            sio.disconnect(namespace='/ws')


@pytest.fixture()
def player_sio(make_user, connect):
    player_client, _ = make_user('bob', 'Bob')
    return connect(player_client)


def test_socket_connect(sio_client):
    assert sio_client.is_connected('/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)

    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert _events(sio_client, 'pong') == [{'n': 1}]


def test_anonymous_socket_cannot_subscribe(sio_client, hosted_game):
    _, game = hosted_game
    sio_client.get_received('/ws')
    sio_client.emit('subscribe', {'resource': f'games/{game.id}'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert [pkt['name'] for pkt in received] == ['error']


def test_subscribe_document_gets_snapshot_then_changes(flask_app, player_sio, hosted_game):
    _, game = hosted_game

    player_sio.emit('subscribe', {'resource': f'games/{game.id}'}, namespace='/ws')
    snapshot = _events(player_sio, 'snapshot')
    assert snapshot[0]['data']['phase'] == 'lobby'

    with flask_app.app_context():
        controller.start_game(game.id)
    changes = _events(player_sio, 'doc_changed')
    assert changes[-1]['path'] == f'games/{game.id}'
    assert changes[-1]['data']['phase'] == 'questionLive'

    player_sio.emit('unsubscribe', {'resource': f'games/{game.id}'}, namespace='/ws')
    player_sio.get_received('/ws')
    with flask_app.app_context():
        controller.force_results(game.id)
    assert _events(player_sio, 'doc_changed') == []


def test_subscribe_collection(flask_app, player_sio, hosted_game, add_player):
    _, game = hosted_game

    player_sio.emit('subscribe', {'resource': f'games/{game.id}/players'}, namespace='/ws')
    snapshot = _events(player_sio, 'snapshot')[0]['data']
    assert [row['key'] for row in snapshot] == ['alice']

    with flask_app.app_context():
        add_player(game.id, 'carol')
    changes = _events(player_sio, 'doc_changed')
    assert [c['path'] for c in changes] == [f'games/{game.id}/players/carol']


def test_answers_and_quiz_hidden_from_players(flask_app, player_sio, hosted_game, connect):
    host_client, game = hosted_game
    with flask_app.app_context():
        controller.start_game(game.id)
        controller.submit_answer(game.id, 'alice', 0, 2)

    for resource in (f'games/{game.id}/answers', f'games/{game.id}/answers/0:alice', f'quizzes/{game.quiz_id}', 'quizzes'):
        player_sio.emit('subscribe', {'resource': resource}, namespace='/ws')
        received = player_sio.get_received('/ws')
        assert [pkt['name'] for pkt in received] == ['error'], resource

    host_sio = connect(host_client)
    host_sio.emit('subscribe', {'resource': f'games/{game.id}/answers'}, namespace='/ws')
    answers = _events(host_sio, 'snapshot')[0]['data']
    assert [row['data']['is_correct'] for row in answers] == [True]
    host_sio.emit('subscribe', {'resource': f'quizzes/{game.quiz_id}'}, namespace='/ws')
    assert _events(host_sio, 'snapshot')[0]['data']['questions'][0]['correct_answer'] == 2


def test_subscribe_rejects_unknown_resource(player_sio):
    player_sio.emit('subscribe', {'resource': 'users/1'}, namespace='/ws')
    assert _events(player_sio, 'error')


def test_only_host_may_join_as_host(player_sio, hosted_game):
    _, game = hosted_game
    player_sio.emit('join_game', {'game_id': game.id, 'is_host': True}, namespace='/ws')
    assert _events(player_sio, 'error')

    player_sio.emit('join_game', {'game_id': game.id}, namespace='/ws')
    assert _events(player_sio, 'joined') == [{'room': f'game:{game.id}', 'is_host': False}]


def test_host_disconnect_stops_timer(flask_app, hosted_game, timer, connect):
    host_client, game = hosted_game
    with flask_app.app_context():
        controller.start_game(game.id)
    assert timer.active(game.id) is not None

    host_sio = connect(host_client)
    host_sio.emit('join_game', {'game_id': game.id, 'is_host': True}, namespace='/ws')
    assert _events(host_sio, 'joined')[0]['is_host'] is True

    host_sio.disconnect(namespace='/ws')
    assert timer.active(game.id) is None
    # the question stays live until the host comes back
    with flask_app.app_context():
        assert repository.get_game(game.id).phase == 'questionLive'

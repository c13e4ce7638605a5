import pytest


def _quiz_payload():
    return {
        'title': 'Capitals',
        'description': 'Warm-up round',
        'questions': [
            {'text': 'Capital of France?', 'options': ['Rome', 'Madrid', 'Paris', 'Oslo'], 'correct_answer': 2, 'time_limit': 30},
            {'text': 'Capital of Norway?', 'options': ['Oslo', 'Bergen', 'Lima', 'Bern'], 'correct_answer': 0},
        ],
    }


@pytest.fixture()
def host(make_user):
    return make_user('host', 'Quiz Host')


@pytest.fixture()
def game(host):
    host_client, _ = host
    quiz = host_client.post('/api/quizzes', json=_quiz_payload()).get_json()
    res = host_client.post('/api/games/create', json={'quiz_id': quiz['id'], 'settings': {'show_leaderboard': True}})
    assert res.status_code == 201
    return res.get_json()


def test_me_reports_caller(client, host):
    assert client.get('/me').get_json() == {'user': None}
    host_client, host_id = host
    me = host_client.get('/me').get_json()['user']
    assert me['id'] == host_id
    assert me['display_name'] == 'Quiz Host'


def test_login_and_bad_password(client, host):
    res = client.post('/login', json={'username': 'host', 'password': 'nope'})
    assert res.status_code == 401
    res = client.post('/login', json={'username': 'host', 'password': 'password'})
    assert res.status_code == 200
    assert res.get_json()['user']['username'] == 'host'


def test_game_routes_require_login(client):
    res = client.post('/api/games/create', json={'quiz_id': 'x'})
    assert res.status_code == 401
    assert 'error' in res.get_json()


def test_quiz_crud(host, make_user):
    host_client, host_id = host
    bad = _quiz_payload()
    bad['questions'][0]['options'] = ['a', 'b', 'c']
    assert host_client.post('/api/quizzes', json=bad).status_code == 400
    bad = _quiz_payload()
    bad['questions'][0]['correct_answer'] = 4
    assert host_client.post('/api/quizzes', json=bad).status_code == 400

    res = host_client.post('/api/quizzes', json=_quiz_payload())
    assert res.status_code == 201
    quiz = res.get_json()
    assert quiz['created_by'] == host_id
    assert len(quiz['questions']) == 2
    assert [q['id'] for q in host_client.get('/api/quizzes').get_json()] == [quiz['id']]

    other_client, _ = make_user('other')
    # questions carry the correct answers
    assert other_client.get(f"/api/quizzes/{quiz['id']}").status_code == 403
    assert other_client.put(f"/api/quizzes/{quiz['id']}", json={'title': 'Mine'}).status_code == 403
    assert other_client.get('/api/quizzes').get_json() == []

    res = host_client.put(f"/api/quizzes/{quiz['id']}", json={'title': 'Capitals II'})
    assert res.status_code == 200
    assert res.get_json()['title'] == 'Capitals II'

    assert host_client.delete(f"/api/quizzes/{quiz['id']}").status_code == 200
    assert host_client.get(f"/api/quizzes/{quiz['id']}").status_code == 404


def test_create_game_needs_questions(host):
    host_client, _ = host
    quiz = host_client.post('/api/quizzes', json={'title': 'Empty', 'questions': []}).get_json()
    res = host_client.post('/api/games/create', json={'quiz_id': quiz['id']})
    assert res.status_code == 400
    assert host_client.post('/api/games/create', json={}).status_code == 400


def test_join_by_code(game, make_user):
    player_client, player_id = make_user('alice', 'Alice')
    found = player_client.get(f"/api/games/code/{game['join_code'].lower()}")
    assert found.status_code == 200
    assert found.get_json()['id'] == game['id']
    assert player_client.get('/api/games/code/ZZZZZZ').status_code == 404

    res = player_client.post(f"/api/games/{game['id']}/join", json={'name': ''})
    assert res.status_code == 201
    assert res.get_json() == {**res.get_json(), 'id': player_id, 'name': 'Alice', 'score': 0}

    state = player_client.get(f"/api/games/{game['id']}/state").get_json()
    assert state['phase'] == 'lobby'
    assert state['is_host'] is False
    assert [p['name'] for p in state['players']] == ['Alice']


def test_host_controls_full_game(host, game, make_user):
    host_client, _ = host
    gid = game['id']

    # nobody joined yet
    res = host_client.post(f'/api/games/{gid}/start')
    assert res.status_code == 400

    player_client, player_id = make_user('alice', 'Alice')
    player_client.post(f'/api/games/{gid}/join', json={'name': 'Ali'})

    assert player_client.post(f'/api/games/{gid}/start').status_code == 403

    res = host_client.post(f'/api/games/{gid}/start')
    assert res.status_code == 200
    state = res.get_json()
    assert state['phase'] == 'questionLive'
    assert state['current_question_index'] == 0
    assert 'correct_answer' not in state['current_question']
    assert 0 < state['remaining'] <= 30

    res = player_client.post(f'/api/games/{gid}/answers', json={'question_index': 0, 'selected_option': 2})
    assert res.status_code == 201
    assert 'is_correct' not in res.get_json()
    res = player_client.post(f'/api/games/{gid}/answers', json={'question_index': 0, 'selected_option': 1})
    assert res.status_code == 409
    res = player_client.post(f'/api/games/{gid}/answers', json={'question_index': 0})
    assert res.status_code == 400

    assert host_client.post(f'/api/games/{gid}/advance').status_code == 409

    res = host_client.post(f'/api/games/{gid}/force-results')
    state = res.get_json()
    assert state['phase'] == 'results'
    assert state['current_question']['correct_answer'] == 2
    assert state['answer_count'] == 1
    assert state['leaderboard'][0]['player_id'] == player_id
    # double click
    assert host_client.post(f'/api/games/{gid}/force-results').status_code == 200

    mine = player_client.get(f'/api/games/{gid}/state').get_json()['my_answer']
    assert mine['selected_option'] == 2

    board = player_client.get(f'/api/games/{gid}/leaderboard').get_json()
    assert board['my_rank'] == 1
    assert board['entries'][0]['player_name'] == 'Ali'
    assert board['entries'][0]['score'] > 100
    assert sum(board['distribution']['counts']) == 1

    res = host_client.post(f'/api/games/{gid}/advance', json={'question_index': 0})
    assert res.get_json()['current_question_index'] == 1
    res = host_client.post(f'/api/games/{gid}/advance', json={'question_index': 0})
    assert res.status_code == 200
    assert res.get_json()['phase'] == 'questionLive'

    host_client.post(f'/api/games/{gid}/force-results')
    res = host_client.post(f'/api/games/{gid}/advance', json={'question_index': 1})
    final = res.get_json()
    assert final['phase'] == 'ended'
    assert final['current_question_index'] == 1
    assert final['current_question'] is None

    latecomer, _ = make_user('bob')
    assert latecomer.post(f'/api/games/{gid}/join', json={}).status_code == 409


def test_unknown_game_is_404(host):
    host_client, _ = host
    assert host_client.get('/api/games/nope/state').status_code == 404
    assert host_client.post('/api/games/nope/start').status_code == 404


def test_quiz_locked_while_game_in_play(host, game, make_user):
    host_client, _ = host
    gid, quiz_id = game['id'], game['quiz_id']
    player_client, player_id = make_user('alice', 'Alice')
    player_client.post(f'/api/games/{gid}/join', json={})
    host_client.post(f'/api/games/{gid}/start')
    player_client.post(f'/api/games/{gid}/answers', json={'question_index': 0, 'selected_option': 2})

    edited = _quiz_payload()
    edited['questions'][0]['correct_answer'] = 0
    assert host_client.put(f'/api/quizzes/{quiz_id}', json=edited).status_code == 409
    assert host_client.delete(f'/api/quizzes/{quiz_id}').status_code == 409

    state = host_client.post(f'/api/games/{gid}/force-results').get_json()
    assert state['current_question']['correct_answer'] == 2
    board = host_client.get(f'/api/games/{gid}/leaderboard').get_json()
    assert board['entries'][0]['player_id'] == player_id
    assert board['entries'][0]['score'] > 100

    host_client.post(f'/api/games/{gid}/advance', json={'question_index': 0})
    host_client.post(f'/api/games/{gid}/force-results')
    host_client.post(f'/api/games/{gid}/advance', json={'question_index': 1})
    assert host_client.put(f'/api/quizzes/{quiz_id}', json=edited).status_code == 200

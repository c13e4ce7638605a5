"""Live subscriptions over Socket.IO.

Clients ``subscribe`` to a store resource (a document path such as
``games/<id>`` or a collection such as ``games/<id>/players``), receive the
current value as ``snapshot`` and every later committed write as
``doc_changed``. Subscribers must be signed in. Hosts also ``join_game``
with ``is_host`` so the server can stop a game's timer when its last host
socket goes away.
"""

import time
from typing import Any, Callable, Dict

from flask import current_app, request
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from livequiz import repository, socketio
from livequiz.errors import GameError
from livequiz.store import store

NAMESPACE = '/ws'
ALLOWED_ROOTS = ('games', 'quizzes')

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_sid_subscriptions: Dict[str, Dict[str, Callable[[], None]]] = {}
_host_count: Dict[str, int] = {}
_stop_deadline: Dict[str, float] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _split_resource(resource: str):
    """Even segment count is a document, odd is a collection."""
    parts = [p for p in (resource or '').split('/') if p]
    if not parts or parts[0] not in ALLOWED_ROOTS:
        return None, None
    if len(parts) % 2 == 0:
        return '/'.join(parts[:-1]), parts[-1]
    return '/'.join(parts), None


def _denied(collection: str, key) -> str:
    """Why the caller may not watch a resource, or '' when they may.

    Quizzes and the answer ledger carry correctness, so only the quiz author
    and the game host see them.
    """
    if not current_user.is_authenticated:
        return 'Sign in required'
    parts = collection.split('/')
    if parts[0] == 'quizzes':
        if key is None or repository.get_quiz(key).created_by != current_user.uid:
            return 'Only the quiz author may watch this quiz'
    elif len(parts) >= 3 and parts[2] == 'answers':
        if repository.get_game(parts[1]).host_id != current_user.uid:
            return 'Only the host may watch answers'
    return ''


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    sid = _get_sid()
    for unsubscribe in _sid_subscriptions.pop(sid, {}).values():
        unsubscribe()
    ctx = _sid_to_ctx.pop(sid, None)
    if not ctx or not ctx.get('is_host'):
        return
    game_id = ctx['game_id']
    _host_count[game_id] = max(0, _host_count.get(game_id, 0) - 1)
    if current_app.config.get('TESTING'):
        if _host_count.get(game_id, 0) == 0:
            _stop_game_timer(current_app._get_current_object(), game_id)
        return
    _schedule_stop_if_no_host(current_app._get_current_object(), game_id)


def handle_join_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    try:
        game = repository.get_game(game_id)
    except GameError as exc:
        emit('error', {'message': exc.message})
        return
    is_host = bool((data or {}).get('is_host'))
    if is_host and not (current_user.is_authenticated and current_user.uid == game.host_id):
        emit('error', {'message': 'Only the host may join as host'})
        return
    room = f"game:{game.id}"
    join_room(room)
    _sid_to_ctx[_get_sid()] = {'game_id': game.id, 'is_host': is_host}
    if is_host:
        _host_count[game.id] = _host_count.get(game.id, 0) + 1
        _stop_deadline.pop(game.id, None)
    emit('joined', {'room': room, 'is_host': is_host})


def handle_leave_game(data):
    game_id = (data or {}).get('game_id')
    if not game_id:
        emit('error', {'message': 'game_id is required'})
        return
    room = f"game:{game_id}"
    leave_room(room)
    emit('left', {'room': room})


def handle_subscribe(data):
    resource = ((data or {}).get('resource') or '').strip('/')
    collection, key = _split_resource(resource)
    if collection is None:
        emit('error', {'message': f'Cannot subscribe to {resource!r}'})
        return
    try:
        reason = _denied(collection, key)
    except GameError as exc:
        reason = exc.message
    if reason:
        emit('error', {'message': reason})
        return
    sid = _get_sid()
    subscriptions = _sid_subscriptions.setdefault(sid, {})
    if resource not in subscriptions:
        def forward(path, doc, _sid=sid, _resource=resource):
            socketio.emit('doc_changed', {'resource': _resource, 'path': path, 'data': doc}, to=_sid, namespace=NAMESPACE)
        subscriptions[resource] = store.subscribe(resource, forward)

    try:
        if key is not None:
            snapshot = store.get(collection, key)
        else:
            snapshot = [{'key': k, 'data': d} for k, d in store.query(collection)]
    except GameError as exc:
        emit('error', {'message': exc.message})
        return
    emit('snapshot', {'resource': resource, 'data': snapshot})


def handle_unsubscribe(data):
    resource = ((data or {}).get('resource') or '').strip('/')
    unsubscribe = _sid_subscriptions.get(_get_sid(), {}).pop(resource, None)
    if unsubscribe:
        unsubscribe()
    emit('unsubscribed', {'resource': resource})


def handle_ping(data):
    emit('pong', data or {})


# ---- host presence ----

def _stop_game_timer(app, game_id: str) -> None:
    """The timer only runs while a host is connected; a returning host must
    force results or restart timing."""
    app.extensions['question_timer'].cancel(game_id)
    _host_count.pop(game_id, None)
    _stop_deadline.pop(game_id, None)
    app.logger.info(f"[host-gone] game={game_id} timer stopped")


def _schedule_stop_if_no_host(app, game_id: str) -> None:
    if _host_count.get(game_id, 0) > 0:
        return
    delay = float(app.config.get('HOST_DISCONNECT_GRACE_SEC', 2.0))
    deadline = time.time() + delay
    _stop_deadline[game_id] = deadline

    def _runner(gid: str, dl: float):
        socketio.sleep(max(0.0, dl - time.time()))
        if _host_count.get(gid, 0) == 0 and _stop_deadline.get(gid) == dl:
            _stop_game_timer(app, gid)

    socketio.start_background_task(_runner, game_id, deadline)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_game', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('subscribe', handle_subscribe, namespace=NAMESPACE)
    socketio.on_event('unsubscribe', handle_unsubscribe, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)

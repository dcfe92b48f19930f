import functools

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from sudoku_battle import socketio
from sudoku_battle.broadcast import NAMESPACE, session_room
from sudoku_battle.errors import MatchError


def _registry():
    return current_app.extensions['sudoku_battle']


def _get_sid() -> str:
    return request.sid  # type: ignore


def _guarded(handler):
    """Turn match errors into an event for the caller; log anything else.

    A failure while handling one event never propagates to the server loop,
    so other sessions keep running.
    """

    @functools.wraps(handler)
    def wrapper(data=None):
        try:
            return handler(data if isinstance(data, dict) else {})
        except MatchError as exc:
            emit(exc.event, exc.to_payload())
        except Exception:
            current_app.logger.exception(f"[handler-error] event={handler.__name__} sid={_get_sid()}")

    return wrapper


def _bound_coordinator():
    registry = _registry()
    binding = registry.binding(_get_sid())
    if binding is None:
        return None, None
    coordinator = registry.find(binding.code)
    if coordinator is None:
        return None, None
    return coordinator, binding.identity


def _release(sid) -> None:
    """Detach a closed connection from whatever session it was bound to."""
    registry = _registry()
    binding = registry.unbind(sid)
    if binding is None:
        return
    coordinator = registry.find(binding.code)
    if coordinator is not None:
        coordinator.disconnect(binding.identity, sid)


def _rebind(sid, code, identity) -> None:
    """Point ``sid`` at its new seat, then let go of the seat it held before.

    Runs only after the new seat was taken, so a rejected join or rejoin
    leaves the caller's current match untouched.
    """
    registry = _registry()
    previous = registry.binding(sid)
    registry.bind(sid, code, identity)
    if previous is None or previous == (code, identity):
        return
    if previous.code != code:
        leave_room(session_room(previous.code))
    coordinator = registry.find(previous.code)
    if coordinator is not None:
        coordinator.disconnect(previous.identity, sid)


def _enter(sid, coordinator):
    """Join the session room. Returns a callable that undoes it."""
    binding = _registry().binding(sid)
    room = session_room(coordinator.code)
    if binding is not None and binding.code == coordinator.code:
        return lambda: None
    join_room(room)
    return lambda: leave_room(room)


def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


@_guarded
def handle_disconnect(data):
    _release(_get_sid())


@_guarded
def handle_create(data):
    registry = _registry()
    sid = _get_sid()
    coordinator = registry.create(data.get('mode'), data.get('difficulty'))
    _enter(sid, coordinator)
    slot = coordinator.host(data.get('name'), sid)
    _rebind(sid, coordinator.code, slot.identity)


@_guarded
def handle_join(data):
    sid = _get_sid()
    coordinator = _registry().get(data.get('code'))
    undo = _enter(sid, coordinator)
    try:
        member, _role = coordinator.join(data.get('name'), sid)
    except MatchError:
        undo()
        raise
    _rebind(sid, coordinator.code, member.identity)


@_guarded
def handle_rejoin(data):
    sid = _get_sid()
    coordinator = _registry().get(data.get('code'))
    undo = _enter(sid, coordinator)
    try:
        member, _role = coordinator.rejoin(data.get('name'), data.get('role'), sid,
                                           identity=data.get('playerId'))
    except MatchError:
        undo()
        raise
    _rebind(sid, coordinator.code, member.identity)


@_guarded
def handle_submit_cell(data):
    coordinator, identity = _bound_coordinator()
    if coordinator is None:
        return
    coordinator.submit_cell(identity, data.get('row'), data.get('col'), data.get('value'))


@_guarded
def handle_erase_cell(data):
    coordinator, identity = _bound_coordinator()
    if coordinator is None:
        return
    coordinator.erase_cell(identity, data.get('row'), data.get('col'), data.get('wasCorrect'))


@_guarded
def handle_use_hint(data):
    coordinator, identity = _bound_coordinator()
    if coordinator is None:
        return
    coordinator.use_hint(identity, data.get('row'), data.get('col'))


@_guarded
def handle_chat(data):
    coordinator, identity = _bound_coordinator()
    if coordinator is None:
        return
    coordinator.chat(identity, data.get('text'), data.get('emoji'))


@_guarded
def handle_reaction(data):
    coordinator, identity = _bound_coordinator()
    if coordinator is None:
        return
    coordinator.react(identity, data.get('emoji'))


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('create', handle_create, namespace=NAMESPACE)
    socketio.on_event('join', handle_join, namespace=NAMESPACE)
    socketio.on_event('rejoin', handle_rejoin, namespace=NAMESPACE)
    socketio.on_event('submit_cell', handle_submit_cell, namespace=NAMESPACE)
    socketio.on_event('erase_cell', handle_erase_cell, namespace=NAMESPACE)
    socketio.on_event('use_hint', handle_use_hint, namespace=NAMESPACE)
    socketio.on_event('chat', handle_chat, namespace=NAMESPACE)
    socketio.on_event('reaction', handle_reaction, namespace=NAMESPACE)

NAMESPACE = '/ws'


def session_room(code: str) -> str:
    return f"session:{code}"


class SocketIOBroadcaster:
    """Best-effort fan-out to a session group or a single connection.

    Emits are fire-and-forget: no acknowledgement, retry or backpressure.
    """

    def __init__(self, socketio, namespace=NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def enter(self, sid, code) -> None:
        self.socketio.server.enter_room(sid, session_room(code), namespace=self.namespace)

    def leave(self, sid, code) -> None:
        self.socketio.server.leave_room(sid, session_room(code), namespace=self.namespace)

    def to_session(self, code, event, payload=None) -> None:
        self.socketio.emit(event, payload or {}, to=session_room(code), namespace=self.namespace)

    def to_connection(self, sid, event, payload=None) -> None:
        if sid:
            self.socketio.emit(event, payload or {}, to=sid, namespace=self.namespace)

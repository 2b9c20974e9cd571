from flask import current_app, request

from bingo import get_engine, socketio, WS_NAMESPACE


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    get_engine(current_app).on_open(_get_sid())


def handle_disconnect(reason=None):
    get_engine(current_app).on_close(_get_sid())


def handle_message(data):
    """Inbound frames are JSON envelopes: ``{"type": ..., "data": {...}}``."""
    get_engine(current_app).on_message(_get_sid(), data)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=WS_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=WS_NAMESPACE)
    socketio.on_event('message', handle_message, namespace=WS_NAMESPACE)

import itertools

import pytest

from radiokit_metadata.transport.message import PHX_JOIN, Message
from radiokit_metadata.transport.phoenix import PhoenixChannel, PhoenixSocket, Push


@pytest.fixture
def socket(mocker):
    socket = mocker.Mock(spec=PhoenixSocket)
    socket.make_ref.side_effect = map(str, itertools.count(1))
    socket.channel.side_effect = lambda topic, params=None: PhoenixChannel(
        socket, topic, params, timeout=0.01
    )
    return socket


@pytest.fixture
def pushed(socket):
    def _pushed(event: str) -> list[tuple[Message, Push | None]]:
        return [
            (c.args[0], c.kwargs.get("reply_to"))
            for c in socket.push.call_args_list
            if c.args[0].event == event
        ]

    return _pushed


@pytest.fixture
def join_push(pushed):
    def _join_push() -> Push:
        _, push = pushed(PHX_JOIN)[-1]
        assert push
        return push

    return _join_push

import pytest

from radiokit_metadata.errors import SubscriptionFailure
from radiokit_metadata.subscription import Subscription, topic_for
from radiokit_metadata.transport.message import PHX_LEAVE, Message


@pytest.fixture
def process(mocker):
    return mocker.Mock()


@pytest.fixture
def on_joined(mocker):
    return mocker.Mock()


@pytest.fixture
def subscription(socket, process):
    return Subscription(socket, "kexp", process)


def _dispatch(push, event, payload):
    push.channel.dispatch(Message(push.channel.topic, event, payload))


def test_topic():
    assert topic_for("kexp") == "broadcast:metadata:kexp"


async def test_join(subscription, socket, join_push, process, on_joined):
    joined = subscription.join(on_joined)
    socket.channel.assert_called_once_with("broadcast:metadata:kexp")
    push = join_push()
    _dispatch(push, "update", {"metadata": {}, "updated_at": 0})
    process.assert_not_called()

    push.trigger("ok", {})
    on_joined.assert_called_once_with()
    assert await joined is None

    _dispatch(push, "update", {"metadata": {"title": "A"}, "updated_at": 1})
    _dispatch(push, "update", {"metadata": None, "updated_at": 2})
    _dispatch(push, "update", {})
    assert [c.args for c in process.call_args_list] == [
        ({"title": "A"}, 1),
        (None, 2),
        (None, None),
    ]


async def test_join_error(subscription, join_push, on_joined):
    joined = subscription.join(on_joined)
    join_push().trigger("error", {"reason": "unauthorized"})
    with pytest.raises(SubscriptionFailure) as exc_info:
        await joined
    assert exc_info.value.reason == "unauthorized"
    on_joined.assert_not_called()


async def test_join_timeout(subscription, on_joined):
    with pytest.raises(SubscriptionFailure) as exc_info:
        await subscription.join(on_joined)
    assert exc_info.value.reason == "timeout"
    on_joined.assert_not_called()


async def test_leave(subscription, join_push, pushed, process, on_joined):
    joined = subscription.join(on_joined)
    push = join_push()
    push.trigger("ok", {})
    await joined
    subscription.leave()
    subscription.leave()
    assert len(pushed(PHX_LEAVE)) == 1
    _dispatch(push, "update", {"metadata": {}, "updated_at": 0})
    process.assert_not_called()


async def test_leave_while_joining(subscription, join_push, on_joined):
    joined = subscription.join(on_joined)
    subscription.leave()
    assert joined.cancelled()
    join_push().trigger("ok", {})
    on_joined.assert_not_called()
    with pytest.raises(RuntimeError):
        subscription.join(on_joined)

import json

from pickem.services.live_channel import (
    PICK_FINALIZE,
    PICK_UPDATE,
    SCORES_UPDATE,
    LiveChannel,
    make_event,
)


def test_make_event():
    assert make_event(PICK_UPDATE, user_id=4, week=2) == {
        "type": "pick:update",
        "payload": {"userId": 4, "week": 2},
    }
    assert make_event(SCORES_UPDATE, week=3, season=2025)["payload"] == {
        "userId": None,
        "week": 3,
        "season": 2025,
    }


def test_publish_fans_out_to_every_subscriber():
    channel = LiveChannel()
    first, second = channel.subscribe(), channel.subscribe()

    delivered = channel.publish(make_event(PICK_FINALIZE, user_id=1, week=1))

    assert delivered == 2
    assert first.get(timeout=0)["type"] == PICK_FINALIZE
    assert second.get(timeout=0)["type"] == PICK_FINALIZE
    assert first.get(timeout=0) is None


def test_publish_without_subscribers():
    assert LiveChannel().publish(make_event(PICK_UPDATE)) == 0


def test_full_subscriber_drops_events_without_blocking_others():
    channel = LiveChannel()
    channel.queue_size = 1
    slow, fast = channel.subscribe(), channel.subscribe()

    channel.publish(make_event(PICK_UPDATE, user_id=1, week=1))
    fast.get(timeout=0)
    delivered = channel.publish(make_event(PICK_UPDATE, user_id=2, week=1))

    assert delivered == 1
    assert slow.dropped == 1
    assert slow.get(timeout=0)["payload"]["userId"] == 1
    assert fast.get(timeout=0)["payload"]["userId"] == 2


def test_closed_subscriptions_are_removed():
    channel = LiveChannel()
    subscription = channel.subscribe()
    assert channel.subscriber_count == 1

    subscription.close()
    assert channel.subscriber_count == 0
    assert channel.publish(make_event(PICK_UPDATE)) == 0
    assert subscription.offer(make_event(PICK_UPDATE)) is False


def test_listener_errors_are_contained():
    channel = LiveChannel()
    received = []

    def broken(event):
        raise RuntimeError("socket gone")

    channel.add_listener(broken)
    channel.add_listener(received.append)
    channel.add_listener(received.append)

    channel.publish(make_event(SCORES_UPDATE, week=1))
    assert len(received) == 1

    channel.remove_listener(received.append)
    channel.publish(make_event(SCORES_UPDATE, week=1))
    assert len(received) == 1


def test_sse_framing_and_heartbeat():
    channel = LiveChannel()
    subscription = channel.subscribe()
    stream = channel.sse_stream(subscription, heartbeat_seconds=0.01)

    assert next(stream) == ": connected\n\n"

    channel.publish(make_event(PICK_UPDATE, user_id=7, week=3))
    frame = next(stream)
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {
        "type": "pick:update",
        "payload": {"userId": 7, "week": 3},
    }

    assert next(stream) == ": ping\n\n"

    stream.close()
    assert subscription.closed
    assert channel.subscriber_count == 0


def test_init_app_reads_config(app):
    channel = LiveChannel(app)
    assert channel.heartbeat_seconds == app.config["LIVE_HEARTBEAT_SECONDS"]
    assert app.extensions["live_channel"] is channel

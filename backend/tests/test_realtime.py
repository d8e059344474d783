from academy.realtime import ADMIN_CHANNEL, Hub, ticket_channel, user_channel


def test_publish_reaches_only_the_channel():
    hub = Hub()
    a, b = [], []
    hub.subscribe("ticket:1", a.append)
    hub.subscribe("ticket:2", b.append)

    assert hub.publish("ticket:1", {"event": "x"}) == 1
    assert a == [{"event": "x"}]
    assert b == []


def test_broken_listener_does_not_block_others():
    hub = Hub()
    received = []

    def broken(payload):
        raise RuntimeError("boom")

    hub.subscribe("admin", broken)
    hub.subscribe("admin", received.append)

    assert hub.publish("admin", 1) == 2
    assert received == [1]


def test_subscription_released_on_exit_even_after_error():
    hub = Hub()
    try:
        with hub.subscribe("user:1", lambda p: None):
            assert hub.listener_count("user:1") == 1
            raise ValueError("handler crashed")
    except ValueError:
        pass
    assert hub.listener_count("user:1") == 0


def test_unsubscribe_twice_is_harmless():
    hub = Hub()
    sub = hub.subscribe("user:1", lambda p: None)
    other = hub.subscribe("user:1", lambda p: None)

    sub.unsubscribe()
    sub.unsubscribe()

    assert hub.listener_count("user:1") == 1
    assert other.active


def test_channel_names():
    assert ticket_channel(5) == "ticket:5"
    assert user_channel(9) == "user:9"
    assert ADMIN_CHANNEL == "admin"

import threading

import pytest

from relayfs.events import Event, EventQueue, UnexpectedEvent


def test_expect_expected():
    q = EventQueue()
    q.notify(Event.RESPONSE)
    q.expect(Event.RESPONSE)


def test_expect_unexpected():
    q = EventQueue()
    q.notify(Event.ABORTED, "reason")

    with pytest.raises(UnexpectedEvent) as e:
        q.expect(Event.RESPONSE)

    assert e.value.expected_event == Event.RESPONSE
    assert e.value.actual_event == Event.ABORTED
    assert e.value.actual_value == "reason"


def test_expect_timeout():
    q = EventQueue()

    with pytest.raises(UnexpectedEvent) as e:
        q.expect(Event.URL_READ, timeout=0.01)

    assert e.value.actual_event is None


def test_exception_from_string():
    q = EventQueue()
    q.exception("foo")

    with pytest.raises(RuntimeError) as e:
        q.expect(Event.RESPONSE)
    assert e.value.args == ("foo",)


def test_builtin_exception():
    q = EventQueue()
    q.exception(OSError(1))

    with pytest.raises(OSError) as e:
        q.expect(Event.RESPONSE)
    assert e.value.args == (1,)


def test_notify_from_thread():
    q = EventQueue()

    t = threading.Thread(target=q.notify, args=(Event.URL_READ, "https://x"))
    t.start()

    assert q.expect(Event.URL_READ, timeout=5.0) == "https://x"

    t.join()

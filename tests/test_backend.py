import threading

import pytest

from backend import RelayBackend, normalize_code
from constants import RELAY_CODE_ALPHABET
from exceptions import BadRequestError, RoomFullError, RoomNotFoundError
from tests.conftest import BrokenSubscriber, RecordingSubscriber


def test_create_room_returns_code_from_alphabet(backend):
    room = backend.create_room()
    assert len(room.code) == 6
    assert set(room.code) <= set(RELAY_CODE_ALPHABET)
    assert room.messages == []
    assert room.sides == set()
    assert backend.get_room(room.room_id) is room


def test_codes_are_unique_across_many_rooms(backend):
    codes = {backend.create_room().code for _ in range(500)}
    assert len(codes) == 500


def test_concurrent_creates_never_share_a_code(backend):
    results = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            room = backend.create_room()
            with lock:
                results.append((room.room_id, room.code))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 400
    assert len({code for _, code in results}) == 400
    assert len({room_id for room_id, _ in results}) == 400


def test_code_collision_is_retried():
    backend = RelayBackend()
    draws = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    backend.generate_code = lambda: next(draws)

    first = backend.create_room()
    second = backend.create_room()
    assert first.code == "AAAAAA"
    assert second.code == "BBBBBB"


def test_join_assigns_a_then_b_then_rejects(backend):
    room = backend.create_room()

    first = backend.join_room(room.code)
    second = backend.join_room(room.code)
    assert (first.side, second.side) == ("A", "B")
    assert first.room_id == second.room_id == room.room_id

    with pytest.raises(RoomFullError):
        backend.join_room(room.code)
    assert room.sides == {"A", "B"}


def test_join_normalizes_code(backend):
    room = backend.create_room()
    result = backend.join_room(f"  {room.code.lower()} ")
    assert result.code == room.code
    assert normalize_code(" ab2c ") == "AB2C"


def test_join_unknown_code(backend):
    backend.create_room()
    with pytest.raises(RoomNotFoundError):
        backend.join_room("ZZZZZZ")


def test_send_and_get_messages_round_trip(backend):
    room = backend.create_room()
    sent = backend.send_message(room.room_id, "A", "  Hello  ", "HELLO")

    messages = backend.get_messages(room.room_id)
    assert messages == [sent]
    assert sent.text == "Hello"
    assert sent.sign_gloss == "HELLO"
    assert sent.to_dict() == {"id": sent.id, "from": "A", "text": "Hello", "signGloss": "HELLO", "at": sent.at}


def test_get_messages_returns_copy(backend):
    room = backend.create_room()
    backend.send_message(room.room_id, "B", "hi")
    snapshot = backend.get_messages(room.room_id)
    snapshot.clear()
    assert len(backend.get_messages(room.room_id)) == 1


def test_sign_gloss_is_stored_as_sent(backend):
    room = backend.create_room()
    padded = backend.send_message(room.room_id, "A", "hi", "  HELLO  ")
    blank = backend.send_message(room.room_id, "B", "hi", "")

    assert padded.to_dict()["signGloss"] == "  HELLO  "
    assert blank.to_dict()["signGloss"] == ""
    assert [m.sign_gloss for m in backend.get_messages(room.room_id)] == ["  HELLO  ", ""]


def test_message_without_gloss_omits_it(backend):
    room = backend.create_room()
    message = backend.send_message(room.room_id, "B", "hi")
    assert message.sign_gloss is None
    assert "signGloss" not in message.to_dict()


def test_unknown_room_reported_before_payload_checks(backend):
    with pytest.raises(RoomNotFoundError):
        backend.send_message("missing", "A", "   ")
    with pytest.raises(RoomNotFoundError):
        backend.send_message("missing", "C", "hi")


@pytest.mark.parametrize("from_side", ["C", "a", "", None])
def test_send_rejects_invalid_side(backend, from_side):
    room = backend.create_room()
    with pytest.raises(BadRequestError):
        backend.send_message(room.room_id, from_side, "hi")
    assert backend.get_messages(room.room_id) == []


def test_send_rejects_blank_text(backend):
    room = backend.create_room()
    with pytest.raises(BadRequestError):
        backend.send_message(room.room_id, "A", "   ")
    assert backend.get_messages(room.room_id) == []


def test_unknown_room_operations_change_nothing(backend):
    room = backend.create_room()
    subscriber = RecordingSubscriber()

    with pytest.raises(RoomNotFoundError):
        backend.send_message("missing", "A", "hi")
    with pytest.raises(RoomNotFoundError):
        backend.get_messages("missing")
    unsubscribe = backend.subscribe("missing", subscriber)
    unsubscribe()

    assert list(backend.rooms) == [room.room_id]
    assert backend.get_messages(room.room_id) == []
    assert backend.subscriber_count(room.room_id) == 0


def test_timestamps_follow_acceptance_order_when_clock_goes_back():
    ticks = iter([1000, 1005, 990, 1010])
    backend = RelayBackend(clock=lambda: next(ticks))
    room = backend.create_room()

    sent = [backend.send_message(room.room_id, "A", f"m{i}") for i in range(3)]
    assert [m.at for m in sent] == [1005, 1005, 1010]
    assert backend.get_messages(room.room_id) == sent


def test_concurrent_sends_keep_order(backend):
    room = backend.create_room()
    subscriber = RecordingSubscriber()
    backend.subscribe(room.room_id, subscriber)

    def worker(side):
        for i in range(100):
            backend.send_message(room.room_id, side, f"{side}{i}")

    threads = [threading.Thread(target=worker, args=(side,)) for side in ("A", "B")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    messages = backend.get_messages(room.room_id)
    assert len(messages) == 200
    assert [m.at for m in messages] == sorted(m.at for m in messages)
    assert [m.text for m in messages if m.from_side == "A"] == [f"A{i}" for i in range(100)]
    assert subscriber.received == messages


def test_fan_out_reaches_every_live_subscriber(backend):
    room = backend.create_room()
    other = backend.create_room()
    first, second, elsewhere = RecordingSubscriber(), RecordingSubscriber(), RecordingSubscriber()
    backend.subscribe(room.room_id, first)
    backend.subscribe(room.room_id, second)
    backend.subscribe(other.room_id, elsewhere)

    message = backend.send_message(room.room_id, "A", "Hello")
    assert first.received == [message]
    assert second.received == [message]
    assert elsewhere.received == []


def test_unsubscribe_stops_delivery(backend):
    room = backend.create_room()
    subscriber = RecordingSubscriber()
    unsubscribe = backend.subscribe(room.room_id, subscriber)
    assert backend.subscriber_count(room.room_id) == 1

    unsubscribe()
    unsubscribe()
    backend.send_message(room.room_id, "A", "Hello")

    assert backend.subscriber_count(room.room_id) == 0
    assert subscriber.received == []


def test_failing_subscriber_is_dropped_without_failing_send(backend):
    room = backend.create_room()
    broken, healthy = BrokenSubscriber(), RecordingSubscriber()
    backend.subscribe(room.room_id, broken)
    backend.subscribe(room.room_id, healthy)

    first = backend.send_message(room.room_id, "A", "one")
    second = backend.send_message(room.room_id, "B", "two")

    assert broken.attempts == 1
    assert healthy.received == [first, second]
    assert backend.subscriber_count(room.room_id) == 1
    assert backend.get_messages(room.room_id) == [first, second]


def test_subscriber_removed_during_fan_out(backend):
    room = backend.create_room()
    late = RecordingSubscriber()
    handles = {}

    class SelfRemoving:
        def deliver(self, message):
            handles["late"]()

    backend.subscribe(room.room_id, SelfRemoving())
    handles["late"] = backend.subscribe(room.room_id, late)

    message = backend.send_message(room.room_id, "A", "hi")
    assert late.received == [message]
    assert backend.subscriber_count(room.room_id) == 1


def test_room_snapshot(backend):
    room = backend.create_room()
    backend.join_room(room.code)
    backend.subscribe(room.room_id, RecordingSubscriber())
    backend.send_message(room.room_id, "A", "hi")

    snapshot = room.snapshot()
    assert snapshot["sides"] == ["A"]
    assert snapshot["message_count"] == 1
    assert snapshot["subscriber_count"] == 1
    assert snapshot["is_full"] is False


def test_independent_backends_do_not_share_rooms():
    first, second = RelayBackend(), RelayBackend()
    room = first.create_room()
    assert second.get_room(room.room_id) is None
    with pytest.raises(RoomNotFoundError):
        second.join_room(room.code)

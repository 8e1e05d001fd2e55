"""
RoomCoordinator state machine tests.

The coordinator is synchronous, so these tests drive it directly and inspect
the deliveries each operation returns.
"""
import pytest

from coordinator import (
    SIGNAL,
    STREAMER_DISCONNECTED,
    STREAMER_JOINED,
    STREAMER_SIGNAL,
    VIEWER_DISCONNECTED,
    VIEWER_JOINED,
    Delivery,
    Membership,
    RoomCoordinator,
)
from errors import ErrorCode, MalformedRequest, RoleConflict
from schemas.rooms import Role, RoomState


def test_viewer_waiting_before_streamer(coordinator):
    assert coordinator.join("ABC1", "viewer", "V") == []
    assert coordinator.get_room("ABC1").state == RoomState.PARTIAL

    deliveries = coordinator.join("ABC1", "streamer", "S")

    assert Delivery("V", STREAMER_JOINED) in deliveries
    assert Delivery("S", VIEWER_JOINED, {"viewerId": "V"}) in deliveries
    assert len(deliveries) == 2
    assert coordinator.get_room("ABC1").state == RoomState.ACTIVE


def test_waiting_viewers_not_announced_when_disabled():
    coordinator = RoomCoordinator(notify_streamer_of_waiting_viewers=False)
    coordinator.join("ABC1", "viewer", "V")

    assert coordinator.join("ABC1", "streamer", "S") == [Delivery("V", STREAMER_JOINED)]


def test_streamer_without_viewers_gets_nothing(coordinator):
    assert coordinator.join("ROOM9", Role.STREAMER, "S") == []
    snapshot = coordinator.get_room("ROOM9")
    assert snapshot.has_streamer
    assert snapshot.viewer_count == 0


def test_viewer_join_notifies_streamer(coordinator):
    coordinator.join("R1", "streamer", "S")

    assert coordinator.join("R1", "viewer", "V") == [Delivery("S", VIEWER_JOINED, {"viewerId": "V"})]


def test_second_streamer_is_rejected(coordinator):
    coordinator.join("ROOM9", "streamer", "S1")
    coordinator.join("ROOM9", "viewer", "V")

    with pytest.raises(RoleConflict) as excinfo:
        coordinator.join("ROOM9", "streamer", "S2")

    assert excinfo.value.code == ErrorCode.ROLE_CONFLICT
    assert coordinator.membership("S2") is None
    assert coordinator.membership("S1") == Membership("ROOM9", Role.STREAMER)
    assert coordinator.get_room("ROOM9").viewer_count == 1


def test_viewer_in_occupied_room_cannot_take_streamer_slot(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V")

    with pytest.raises(RoleConflict):
        coordinator.join("R", "streamer", "V")

    # Rejected join leaves the existing membership alone
    assert coordinator.membership("V") == Membership("R", Role.VIEWER)


def test_repeated_joins_are_noops(coordinator):
    coordinator.join("R", "streamer", "S")
    assert coordinator.join("R", "viewer", "V") != []

    assert coordinator.join("R", "viewer", "V") == []
    assert coordinator.join("R", "streamer", "S") == []
    assert coordinator.get_room("R").viewer_count == 1


@pytest.mark.parametrize(
    "room, role",
    [
        ("", "viewer"),
        ("   ", "viewer"),
        (None, "viewer"),
        ("R", "moderator"),
        ("R", None),
        ("x" * 65, "viewer"),
    ],
)
def test_malformed_join_does_not_touch_table(coordinator, room, role):
    with pytest.raises(MalformedRequest):
        coordinator.join(room, role, "C")

    assert len(coordinator) == 0
    assert coordinator.membership("C") is None


def test_room_code_is_stripped(coordinator):
    coordinator.join("  R1 ", "viewer", "V")

    assert "R1" in coordinator
    assert coordinator.leave("R1", "V") == []
    assert "R1" not in coordinator


def test_viewer_signal_reaches_streamer(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V")
    offer = {"type": "offer", "sdp": "v=0"}

    assert coordinator.signal("streamer", offer, "R", "V") == [
        Delivery("S", SIGNAL, {"from": "V", "signal": offer})
    ]


def test_streamer_signal_reaches_viewer_without_sender_id(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V")
    answer = {"type": "answer", "sdp": "v=0"}

    assert coordinator.signal("V", answer, "R", "S") == [Delivery("V", STREAMER_SIGNAL, answer)]


def test_signal_to_missing_streamer_is_dropped(coordinator):
    coordinator.join("R", "viewer", "V")

    assert coordinator.signal("streamer", {"candidate": "x"}, "R", "V") == []
    assert coordinator.signal("streamer", {"candidate": "x"}, "NOPE", "V") == []


def test_signal_between_viewers_is_dropped(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V1")
    coordinator.join("R", "viewer", "V2")

    assert coordinator.signal("V2", "hello", "R", "V1") == []


def test_streamer_signal_to_unknown_viewer_is_dropped(coordinator):
    coordinator.join("R", "streamer", "S")

    assert coordinator.signal("ghost", "hello", "R", "S") == []


def test_signal_payload_is_not_inspected(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V")

    for payload in (None, "raw", 42, ["a", {"b": 1}]):
        assert coordinator.signal("streamer", payload, "R", "V")[0].data["signal"] == payload


def test_streamer_disconnect_removes_room(coordinator):
    coordinator.join("R1", "streamer", "S")
    coordinator.join("R1", "viewer", "V")

    assert coordinator.disconnect("S") == [Delivery("V", STREAMER_DISCONNECTED)]
    assert "R1" not in coordinator
    assert coordinator.membership("V") is None


def test_streamer_leave_notifies_every_viewer(coordinator):
    coordinator.join("R", "streamer", "S")
    coordinator.join("R", "viewer", "V1")
    coordinator.join("R", "viewer", "V2")

    deliveries = coordinator.leave("R", "S")

    assert sorted(d.to for d in deliveries) == ["V1", "V2"]
    assert all(d.event == STREAMER_DISCONNECTED for d in deliveries)
    assert len(coordinator) == 0


def test_lone_streamer_leave_removes_room(coordinator):
    coordinator.join("R", "streamer", "S")

    assert coordinator.leave("R", "S") == []
    assert "R" not in coordinator


def test_viewer_disconnect_keeps_room(coordinator):
    coordinator.join("R2", "streamer", "S")
    coordinator.join("R2", "viewer", "V1")
    coordinator.join("R2", "viewer", "V2")

    assert coordinator.disconnect("V1") == [Delivery("S", VIEWER_DISCONNECTED, {"viewerId": "V1"})]
    snapshot = coordinator.get_room("R2")
    assert snapshot.viewer_count == 1
    assert coordinator.membership("V2") == Membership("R2", Role.VIEWER)


def test_last_waiting_viewer_leaving_removes_room(coordinator):
    coordinator.join("R", "viewer", "V")

    assert coordinator.leave("R", "V") == []
    assert len(coordinator) == 0


def test_leave_wrong_room_is_noop(coordinator):
    coordinator.join("R", "streamer", "S")

    assert coordinator.leave("OTHER", "S") == []
    assert "R" in coordinator


def test_disconnect_unknown_connection_is_noop(coordinator):
    assert coordinator.disconnect("nobody") == []
    assert coordinator.disconnect("nobody") == []


def test_join_other_room_moves_connection(coordinator):
    coordinator.join("A", "streamer", "S")
    coordinator.join("A", "viewer", "V")

    deliveries = coordinator.join("B", "viewer", "V")

    assert deliveries == [Delivery("S", VIEWER_DISCONNECTED, {"viewerId": "V"})]
    assert coordinator.get_room("A").viewer_count == 0
    assert coordinator.get_room("B").viewer_count == 1
    assert coordinator.membership("V") == Membership("B", Role.VIEWER)


def test_streamer_switching_to_viewer_closes_its_room(coordinator):
    coordinator.join("A", "streamer", "S")
    coordinator.join("A", "viewer", "V")

    deliveries = coordinator.join("A", "viewer", "S")

    assert deliveries == [Delivery("V", STREAMER_DISCONNECTED)]
    snapshot = coordinator.get_room("A")
    assert not snapshot.has_streamer
    assert snapshot.viewer_count == 1
    assert coordinator.membership("V") is None


def test_rooms_are_independent(coordinator):
    coordinator.join("A", "streamer", "S1")
    coordinator.join("B", "streamer", "S2")
    coordinator.join("B", "viewer", "V")

    coordinator.disconnect("S1")

    assert "A" not in coordinator
    assert coordinator.get_room("B").state == RoomState.ACTIVE
    assert [snapshot.code for snapshot in coordinator.list_rooms()] == ["B"]

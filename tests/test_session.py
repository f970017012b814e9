import json

from pokerroom.registry import RoomRegistry
from pokerroom.session import RoomSession, SessionState


class DummySubscriber:
    def __init__(self) -> None:
        self.client_id = None
        self.closed = False
        self.frames: list[dict] = []

    def enqueue(self, frame: str) -> bool:
        if self.closed:
            return False
        self.frames.append(json.loads(frame))
        return True

    def types(self) -> list[str]:
        return [f["type"] for f in self.frames]

    def clear(self) -> None:
        self.frames.clear()


def connect(registry: RoomRegistry, client_id: str, room_id: str = "sprint") -> tuple[RoomSession, DummySubscriber]:
    sub = DummySubscriber()
    session = RoomSession(sub, registry)
    session.handle_text(json.dumps({"type": "join", "roomId": room_id, "clientId": client_id}))
    return session, sub


def send(session: RoomSession, **message) -> None:
    session.handle_text(json.dumps(message))


def add(session: RoomSession, pid, name: str, client_id: str) -> None:
    send(session, type="addParticipant", participant={"id": pid, "name": name, "clientId": client_id})


def test_events_before_join_are_ignored() -> None:
    registry = RoomRegistry()
    sub = DummySubscriber()
    session = RoomSession(sub, registry)

    add(session, "p1", "Ann", "c1")

    assert session.state == SessionState.Unjoined
    assert sub.frames == []
    assert len(registry) == 0


def test_join_replies_with_snapshot_to_joiner_only() -> None:
    registry = RoomRegistry()
    first, first_sub = connect(registry, "c1")
    add(first, "p1", "Ann", "c1")
    send(first, type="updateTask", task="Search box")
    first_sub.clear()

    second, second_sub = connect(registry, "c2")

    assert second.state == SessionState.Joined
    assert first_sub.frames == []
    assert second_sub.frames == [{
        "type": "roomState",
        "room": {
            "participants": [{"id": "p1", "name": "Ann", "vote": None, "hasVoted": False, "clientId": "c1"}],
            "task": "Search box",
            "votesRevealed": False,
        },
    }]


def test_participant_added_is_echoed_to_sender() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    a_sub.clear()
    b_sub.clear()

    add(a, "p1", "Ann", "c1")

    assert a_sub.types() == ["participantAdded"]
    assert b_sub.types() == ["participantAdded"]
    assert b_sub.frames[0]["participant"]["hasVoted"] is False


def test_task_and_reveal_are_not_echoed_to_sender() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    a_sub.clear()
    b_sub.clear()

    send(a, type="updateTask", task="Payment flow")
    send(a, type="revealVotes", revealed=True)

    assert a_sub.frames == []
    assert b_sub.frames == [
        {"type": "taskUpdated", "task": "Payment flow"},
        {"type": "votesRevealed", "revealed": True},
    ]
    room = registry.get("sprint")
    assert room.task == "Payment flow"
    assert room.votes_revealed is True


def test_vote_and_reset_reach_everyone() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    add(a, "p1", "Ann", "c1")
    add(b, "p2", "Bob", "c2")
    a_sub.clear()
    b_sub.clear()

    send(b, type="vote", participantId="p2", vote="5")
    send(a, type="resetVotes")

    expected = [
        {"type": "voteUpdated", "participantId": "p2", "vote": "5", "hasVoted": True},
        {"type": "votesReset"},
    ]
    assert a_sub.frames == expected
    assert b_sub.frames == expected
    assert all(not p.has_voted for p in registry.get("sprint").participants)


def test_vote_for_unknown_participant_broadcasts_nothing() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    a_sub.clear()

    send(a, type="vote", participantId="ghost", vote="3")

    assert a_sub.frames == []


def test_malformed_and_unknown_messages_keep_session_open() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    a_sub.clear()

    a.handle_text("{not json")
    a.handle_text('{"type": "vote"}')
    send(a, type="someFutureEvent", payload=1)
    add(a, "p1", "Ann", "c1")

    assert a.state == SessionState.Joined
    assert a_sub.types() == ["participantAdded"]


def test_disconnect_removes_owned_participants() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    add(a, "p1", "Ann", "c1")
    add(a, "p2", "Ann's proxy", "c1")
    add(b, "p3", "Bob", "c2")
    b_sub.clear()

    a_sub.closed = True
    a.close()

    assert a.state == SessionState.Closed
    assert b_sub.frames == [
        {"type": "participantRemoved", "participantId": "p1"},
        {"type": "participantRemoved", "participantId": "p2"},
    ]
    assert [p.id for p in registry.get("sprint").participants] == ["p3"]


def test_last_disconnect_deletes_room() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    send(a, type="updateTask", task="Old task")
    add(a, "p1", "Ann", "c2")

    a.close()
    assert "sprint" not in registry

    _, sub = connect(registry, "c3")
    assert sub.frames[0]["room"] == {"participants": [], "task": "", "votesRevealed": False}


def test_disconnect_keeps_participants_while_same_client_still_connected() -> None:
    registry = RoomRegistry()
    old, old_sub = connect(registry, "c1")
    add(old, "p1", "Ann", "c1")
    new, new_sub = connect(registry, "c1")
    new_sub.clear()

    old_sub.closed = True
    old.close()

    assert new_sub.frames == []
    assert [p.id for p in registry.get("sprint").participants] == ["p1"]


def test_closed_subscribers_are_skipped() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    b_sub.clear()
    b_sub.closed = True

    add(a, "p1", "Ann", "c1")

    assert b_sub.frames == []
    assert a_sub.types()[-1] == "participantAdded"


def test_joining_another_room_leaves_the_first() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1", room_id="one")
    add(a, "p1", "Ann", "c1")

    send(a, type="join", roomId="two", clientId="c1")

    assert "one" not in registry
    assert a.room is registry.get("two")
    assert a_sub.types()[-1] == "roomState"


def test_rejoining_under_new_identity_releases_old_participants() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    add(a, "p1", "Ann", "c1")
    b_sub.clear()

    send(a, type="join", roomId="sprint", clientId="c9")

    assert b_sub.frames == [{"type": "participantRemoved", "participantId": "p1"}]
    assert registry.get("sprint").participants == []
    assert a.client_id == "c9"
    assert a_sub.types()[-1] == "roomState"


def test_undecodable_frames_leave_room_untouched() -> None:
    registry = RoomRegistry()
    a, a_sub = connect(registry, "c1")
    b, b_sub = connect(registry, "c2")
    add(a, "p1", "Ann", "c1")
    b_sub.clear()

    a.handle_text('{"type": "vote", "participantId": ' + "1" * 5000 + ', "vote": "3"}')
    a.handle_text("[" * 100000 + "]" * 100000)
    a.handle_text(b"\x80\x81")
    send(a, type="resetVotes")

    assert a.state == SessionState.Joined
    assert b_sub.frames == [{"type": "votesReset"}]
    assert [p.id for p in registry.get("sprint").participants] == ["p1"]

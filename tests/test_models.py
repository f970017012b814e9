from pokerroom.models import CARD_VALUES, Participant, Room, compute_results, parse_vote


def make_voters(*votes):
    participants = []
    for i, vote in enumerate(votes):
        p = Participant(id=f"p{i}", name=f"user{i}", client_id="c")
        if vote is not None:
            p.vote = vote
            p.has_voted = True
        participants.append(p)
    return participants


def test_results_for_spread_votes() -> None:
    results = compute_results(make_voters("1", "2", "3"))
    assert results.mean == 2.0
    assert results.median == 2
    assert results.consensus is False


def test_results_for_identical_votes() -> None:
    results = compute_results(make_voters("5", "5"))
    assert results.mean == 5.0
    assert results.median == 5
    assert results.consensus is True


def test_non_numeric_cards_count_as_cast_but_not_in_tally() -> None:
    results = compute_results(make_voters("?", "3"))
    assert results.mean == 3.0
    assert results.median == 3
    assert results.consensus is True
    assert [vote for _, vote in results.votes] == ["?", "3"]


def test_even_count_median_averages_middle_pair() -> None:
    results = compute_results(make_voters("8", "1", "3", "13"))
    assert results.median == 5.5
    assert results.mean == 6.3


def test_no_numeric_votes_gives_no_data() -> None:
    results = compute_results(make_voters("☕", "?", None))
    assert results.has_data is False
    assert results.mean is None
    assert results.median is None
    assert results.consensus is None
    assert len(results.votes) == 2


def test_participants_without_vote_are_ignored() -> None:
    results = compute_results(make_voters("2", None, "2"))
    assert results.mean == 2.0
    assert results.consensus is True


def test_parse_vote_rejects_non_estimable_values() -> None:
    assert parse_vote("13") == 13.0
    assert parse_vote("0.5") == 0.5
    assert parse_vote("?") is None
    assert parse_vote("☕") is None
    assert parse_vote("") is None
    assert parse_vote("nan") is None
    assert parse_vote(None) is None


def test_room_serialization_uses_wire_names() -> None:
    room = Room(id="r1", task="Login page")
    room.participants.append(Participant(id=7, name="Ann", client_id="client_a"))

    assert room.to_dict() == {
        "participants": [
            {"id": 7, "name": "Ann", "vote": None, "hasVoted": False, "clientId": "client_a"},
        ],
        "task": "Login page",
        "votesRevealed": False,
    }
    assert room.summary() == {"id": "r1", "participantCount": 1, "task": "Login page", "votesRevealed": False}


def test_only_estimable_cards_parse_as_numbers() -> None:
    numeric = [card for card in CARD_VALUES if parse_vote(card) is not None]
    assert numeric == ["0", "1", "2", "3", "5", "8", "13", "21"]


def test_mean_rounds_the_binary_value() -> None:
    # 1.15 is stored as 1.1499999..., so it rounds down
    assert compute_results(make_voters("1", "1.3")).mean == 1.1
    assert compute_results(make_voters("5", "8", "5", "7")).mean == 6.3

"""Room model definitions for the planning poker room."""

import math
from decimal import ROUND_HALF_UP, Decimal
from dataclasses import dataclass, field
from typing import Any, Optional


# Fibonacci deck plus "don't know" and "coffee break" cards
CARD_VALUES = ("0", "1", "2", "3", "5", "8", "13", "21", "?", "☕")

DEFAULT_ROOM_ID = "default"


def parse_vote(vote: Any) -> Optional[float]:
    """Return the numeric value of a vote, or None for non-estimable cards."""
    if vote is None or isinstance(vote, bool):
        return None
    try:
        value = float(vote)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def round_half_up(value: float, places: str = "0.1") -> float:
    """Round the exact binary value half-up: 6.25 -> 6.3, but 1.15 (really 1.1499...) -> 1.1."""
    return float(Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP))


@dataclass
class Participant:
    """A voting identity within a room. Votes arrive only via explicit vote events."""

    id: Any
    name: str
    client_id: Optional[str] = None
    vote: Optional[str] = None
    has_voted: bool = False

    def clear_vote(self):
        self.vote = None
        self.has_voted = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "vote": self.vote,
            "hasVoted": self.has_voted,
            "clientId": self.client_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Participant":
        return cls(
            id=d["id"],
            name=d["name"],
            client_id=d.get("clientId"),
            vote=d.get("vote"),
            has_voted=bool(d.get("hasVoted", False)),
        )


@dataclass
class Room:
    """Authoritative state for one voting session."""

    id: str
    task: str = ""
    votes_revealed: bool = False
    participants: list[Participant] = field(default_factory=list)  # insertion order
    subscribers: set = field(default_factory=set, repr=False, compare=False)

    def find(self, participant_id: Any) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def owned_by(self, client_id: str) -> list[Participant]:
        return [p for p in self.participants if p.client_id == client_id]

    def open_subscribers(self) -> list:
        """Snapshot of subscribers whose connection is still open."""
        return [s for s in list(self.subscribers) if not s.closed]

    def to_dict(self) -> dict:
        return {
            "participants": [p.to_dict() for p in self.participants],
            "task": self.task,
            "votesRevealed": self.votes_revealed,
        }

    def summary(self) -> dict:
        return {
            "id": self.id,
            "participantCount": len(self.participants),
            "task": self.task,
            "votesRevealed": self.votes_revealed,
        }


@dataclass
class VoteResults:
    """Derived tally for the current votes. All numeric fields are None when there is no data."""

    mean: Optional[float] = None
    median: Optional[float] = None
    consensus: Optional[bool] = None
    votes: list[tuple[str, Any]] = field(default_factory=list)  # (name, vote) for everyone who voted

    @property
    def has_data(self) -> bool:
        return self.mean is not None


def compute_results(participants: list[Participant]) -> VoteResults:
    """Mean, median and consensus over numeric votes; non-numeric cards only count as cast."""
    cast = [(p.name, p.vote) for p in participants if p.has_voted]
    numeric = sorted(
        v for v in (parse_vote(p.vote) for p in participants if p.has_voted) if v is not None
    )
    if not numeric:
        return VoteResults(votes=cast)

    mean = round_half_up(sum(numeric) / len(numeric))
    mid = len(numeric) // 2
    if len(numeric) % 2 == 0:
        median = (numeric[mid - 1] + numeric[mid]) / 2
    else:
        median = numeric[mid]
    return VoteResults(
        mean=mean,
        median=median,
        consensus=len(set(numeric)) == 1,
        votes=cast,
    )

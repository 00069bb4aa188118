"""
Trade proposal domain model.

A trade moves forward exactly once, from ``pending`` to one of the
terminal states. Terminal trades are kept as the audit trail.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TradeStatus(str, Enum):
    """Lifecycle states of a trade proposal."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TradeStatus.PENDING


class TradeAction(str, Enum):
    """Who may move a pending trade, and where it goes."""

    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"


# action -> (target status, party allowed to act)
TRANSITIONS: dict[TradeAction, tuple[TradeStatus, str]] = {
    TradeAction.ACCEPT: (TradeStatus.ACCEPTED, "receiver"),
    TradeAction.REJECT: (TradeStatus.REJECTED, "receiver"),
    TradeAction.CANCEL: (TradeStatus.CANCELLED, "sender"),
}


def next_status(current: TradeStatus, action: TradeAction) -> TradeStatus | None:
    """
    Resolve the status an action leads to.

    Returns None when ``current`` is terminal: no action applies.
    """
    if current.is_terminal:
        return None
    return TRANSITIONS[action][0]


@dataclass
class TradeProposal:
    """
    A proposal as the domain sees it.

    Attributes:
        id: Store identifier
        sender_id: User who proposed
        receiver_id: User who must answer
        sender_album_id: Sender's album instance; fixes the template and
            which ownership rows are debited/credited on the sender side
        offer: Sticker numbers the sender gives
        request: Sticker numbers the sender receives
        status: Current lifecycle state
        receiver_album_id: Destination chosen by the receiver on accept
    """

    id: int
    sender_id: str
    receiver_id: str
    sender_album_id: int
    offer: list[int] = field(default_factory=list)
    request: list[int] = field(default_factory=list)
    status: TradeStatus = TradeStatus.PENDING
    receiver_album_id: int | None = None
    created_at: datetime | None = None

    def party_of(self, user_id: str) -> str | None:
        """Return "sender", "receiver" or None for an outsider."""
        if user_id == self.sender_id:
            return "sender"
        if user_id == self.receiver_id:
            return "receiver"
        return None

    def may_act(self, user_id: str, action: TradeAction) -> bool:
        """True if ``user_id`` is the party entitled to ``action``."""
        return self.party_of(user_id) == TRANSITIONS[action][1]

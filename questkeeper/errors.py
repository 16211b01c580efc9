"""
questkeeper.errors — Exception Hierarchy
=========================================

Lets callers tell "the thing you asked about does not exist" apart from
genuine failures.  Not-found errors abort the current unit of work (one
quest, one participant) and are never retried automatically.
"""

from __future__ import annotations


class QuestKeeperError(Exception):
    """Base class for all QuestKeeper errors."""


class NotFoundError(QuestKeeperError):
    """A referenced record does not exist."""


class QuestNotFoundError(NotFoundError):
    """No quest with the requested quest id."""

    def __init__(self, quest_id: str) -> None:
        super().__init__(f"Quest {quest_id!r} not found")
        self.quest_id = quest_id


class UserNotFoundError(NotFoundError):
    """No ledger record for the requested user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id!r} not found")
        self.user_id = user_id


class CharacterNotFoundError(NotFoundError):
    """The participant's character could not be resolved."""

    def __init__(self, user_id: str, name: str) -> None:
        super().__init__(f"Character {name!r} for user {user_id!r} not found")
        self.user_id = user_id
        self.name = name


class ItemNotFoundError(NotFoundError):
    """A reward item is missing from the item catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Item {name!r} not found in catalog")
        self.name = name


class QuestStateError(QuestKeeperError):
    """The quest is not in a state that allows the requested operation."""


class InvalidQuantityError(QuestKeeperError):
    """An item grant asked for zero or fewer items."""

    def __init__(self, name: str, quantity: int) -> None:
        super().__init__(f"Cannot grant {quantity} of {name!r}")
        self.name = name
        self.quantity = quantity

"""
questkeeper.services.inventory_service — Item Catalog & Inventory
==================================================================

Item grants resolve the catalog entry case-insensitively, then either
grow the character's existing stack or start a new one.  Every grant is
journaled in ``inventory_logs``.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from questkeeper.database.models import Character, InventoryItem, InventoryLog, Item
from questkeeper.errors import InvalidQuantityError, ItemNotFoundError

logger = logging.getLogger(__name__)


def resolve_item(session: Session, name: str) -> Item:
    """Find a catalog item by name, ignoring case."""
    item = session.scalar(
        select(Item).where(func.lower(Item.item_name) == name.strip().lower())
    )
    if item is None:
        raise ItemNotFoundError(name)
    return item


def grant_item(
    session: Session,
    character: Character,
    item: Item,
    quantity: int,
    *,
    obtain: str,
) -> InventoryItem:
    """Add *quantity* of *item* to *character*'s inventory and log it.

    Grants only ever add; a non-positive *quantity* raises
    :class:`InvalidQuantityError`.
    """
    if quantity <= 0:
        raise InvalidQuantityError(item.item_name, quantity)
    stack = session.scalar(
        select(InventoryItem).where(
            InventoryItem.character_id == character.id,
            InventoryItem.item_id == item.id,
        )
    )
    if stack is None:
        stack = InventoryItem(
            character_id=character.id,
            item_id=item.id,
            quantity=quantity,
            obtain=obtain,
        )
        session.add(stack)
    else:
        stack.quantity = (stack.quantity or 0) + quantity

    session.add(InventoryLog(
        character_id=character.id,
        character_name=character.name,
        item_name=item.item_name,
        quantity=quantity,
        obtain=obtain,
        location=character.current_village,
    ))
    session.flush()
    logger.info(
        "Granted %d× %s to %s (%s)", quantity, item.item_name, character.name, obtain
    )
    return stack


def inventory_quantity(session: Session, character: Character, name: str) -> int:
    """Current stack size of *name* for *character* (0 if absent)."""
    qty = session.scalar(
        select(InventoryItem.quantity)
        .join(Item, Item.id == InventoryItem.item_id)
        .where(
            InventoryItem.character_id == character.id,
            func.lower(Item.item_name) == name.strip().lower(),
        )
    )
    return qty or 0

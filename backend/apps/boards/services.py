"""
Card mutations that feed the automation engine.

Each mutation commits first; the matching automation trigger is submitted
on commit and runs in the background.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Max

from .dispatch import fire_trigger
from .models import Activity, AutomationRule, Board, BoardCard, BoardList

logger = logging.getLogger(__name__)


def log_activity(
    board: Board,
    activity_type: str,
    description: str,
    *,
    user=None,
    card: BoardCard | None = None,
    metadata: dict | None = None,
) -> Activity | None:
    """Record a board activity. Failures are logged, never raised."""
    try:
        with transaction.atomic():
            return Activity.objects.create(
                board=board,
                card=card,
                user=user if user is not None and user.is_authenticated else None,
                activity_type=activity_type,
                description=description,
                metadata=metadata,
            )
    except Exception:
        logger.exception("Failed to log activity %s on board %s", activity_type, board.id)
        return None


def _next_position(board_list: BoardList) -> int:
    max_position = BoardCard.objects.filter(list=board_list).aggregate(
        max=Max("position")
    ).get("max")
    return 0 if max_position is None else max_position + 1


def create_card(
    board_list: BoardList,
    title: str,
    *,
    created_by=None,
    description: str = "",
) -> BoardCard:
    """Append a new card to a list and fire CARD_CREATED."""
    with transaction.atomic():
        card = BoardCard.objects.create(
            list=board_list,
            title=title,
            description=description,
            position=_next_position(board_list),
            created_by=created_by if created_by is not None and created_by.is_authenticated else None,
        )
        log_activity(
            board_list.board,
            Activity.ActivityType.CARD_CREATED,
            f'Card "{card.title}" created in list "{board_list.title}"',
            user=created_by,
            card=card,
            metadata={"list_id": str(board_list.id)},
        )
        fire_trigger(
            board_list.board_id,
            AutomationRule.TriggerType.CARD_CREATED,
            str(board_list.id),
            card.id,
        )
    return card


def move_card(card: BoardCard, target_list: BoardList, *, moved_by=None) -> BoardCard:
    """Append a card to another list of the same board and fire CARD_MOVED_TO_LIST."""
    if target_list.board_id != card.list.board_id:
        raise ValueError("Target list belongs to a different board")
    if target_list.id == card.list_id:
        return card

    from_list = card.list
    with transaction.atomic():
        position = _next_position(target_list)
        BoardCard.objects.filter(id=card.id).update(list=target_list, position=position)
        card.refresh_from_db()
        log_activity(
            target_list.board,
            Activity.ActivityType.CARD_MOVED,
            f'Card "{card.title}" moved from "{from_list.title}" to "{target_list.title}"',
            user=moved_by,
            card=card,
            metadata={"from_list_id": str(from_list.id), "to_list_id": str(target_list.id)},
        )
        fire_trigger(
            target_list.board_id,
            AutomationRule.TriggerType.CARD_MOVED_TO_LIST,
            str(target_list.id),
            card.id,
        )
    return card

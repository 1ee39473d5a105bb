"""
Persistence interface used by the board automation engine.

The engine only talks to an ``AutomationStore``; ``DjangoAutomationStore``
is the ORM-backed implementation used in production. All card mutations are
single statements, so concurrent triggers never hold locks on a card.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from django.contrib.auth import get_user_model
from django.db.models import Max

from apps.core.automation_base import ActionError

from .models import (
    AutomationLog,
    AutomationRule,
    BoardCard,
    BoardLabel,
    BoardList,
    CardLabel,
    CardMember,
)


@dataclass(frozen=True)
class ActionSnapshot:
    action_type: str
    value: str | None = None


@dataclass(frozen=True)
class RuleSnapshot:
    """Read-only copy of an automation rule and its ordered actions."""

    id: str
    board_id: str
    trigger_type: str
    trigger_val: str | None = None
    actions: tuple[ActionSnapshot, ...] = ()


class AutomationStore(Protocol):
    async def find_rules_by_board_and_trigger(
        self, board_id: str, trigger_type: str
    ) -> list[RuleSnapshot]: ...

    async def archive_card(self, card_id: str) -> None: ...

    async def mark_card_done(self, card_id: str) -> None: ...

    async def add_card_label(self, card_id: str, label_id: str) -> bool: ...

    async def remove_card_label(self, card_id: str, label_id: str) -> bool: ...

    async def move_card_to_list(self, card_id: str, list_id: str) -> int: ...

    async def assign_card_member(self, card_id: str, user_id: str) -> bool: ...

    async def set_card_due_date(self, card_id: str, due_date: datetime) -> None: ...

    async def record_automation_log(
        self,
        rule_id: str,
        success: bool,
        message: str,
        *,
        action_type: str = "",
        card_id: str = "",
    ) -> None: ...


def _snapshot(rule: AutomationRule) -> RuleSnapshot:
    return RuleSnapshot(
        id=str(rule.id),
        board_id=str(rule.board_id),
        trigger_type=rule.trigger_type,
        trigger_val=rule.trigger_val,
        actions=tuple(
            ActionSnapshot(action_type=action.action_type, value=action.value)
            for action in rule.actions.all()
        ),
    )


class DjangoAutomationStore:
    """AutomationStore backed by the Django async ORM."""

    async def find_rules_by_board_and_trigger(
        self, board_id: str, trigger_type: str
    ) -> list[RuleSnapshot]:
        rules = (
            AutomationRule.objects.filter(
                board_id=board_id,
                trigger_type=trigger_type,
                is_active=True,
            )
            .prefetch_related("actions")
            .order_by("created_at")
        )
        return [_snapshot(rule) async for rule in rules]

    async def _get_card(self, card_id: str) -> BoardCard:
        card = await BoardCard.objects.select_related("list").filter(id=card_id).afirst()
        if card is None:
            raise ActionError(f"Card {card_id} not found.")
        return card

    async def _update_card(self, card_id: str, **fields) -> None:
        updated = await BoardCard.objects.filter(id=card_id).aupdate(**fields)
        if not updated:
            raise ActionError(f"Card {card_id} not found.")

    async def archive_card(self, card_id: str) -> None:
        await self._update_card(card_id, archived=True)

    async def mark_card_done(self, card_id: str) -> None:
        await self._update_card(card_id, is_done=True)

    async def set_card_due_date(self, card_id: str, due_date: datetime) -> None:
        await self._update_card(card_id, due_date=due_date)

    async def add_card_label(self, card_id: str, label_id: str) -> bool:
        card = await self._get_card(card_id)
        label = await BoardLabel.objects.filter(
            id=label_id, board_id=card.list.board_id
        ).afirst()
        if label is None:
            raise ActionError(f"Label {label_id} not found on this board.")

        _, created = await CardLabel.objects.aget_or_create(card=card, label=label)
        return created

    async def remove_card_label(self, card_id: str, label_id: str) -> bool:
        card = await self._get_card(card_id)
        deleted, _ = await CardLabel.objects.filter(card=card, label_id=label_id).adelete()
        return deleted > 0

    async def move_card_to_list(self, card_id: str, list_id: str) -> int:
        card = await self._get_card(card_id)
        target = await BoardList.objects.filter(
            id=list_id, board_id=card.list.board_id
        ).afirst()
        if target is None:
            raise ActionError(f"List {list_id} not found on this board.")
        if target.id == card.list_id:
            return card.position

        max_position = (
            await BoardCard.objects.filter(list=target).aaggregate(max=Max("position"))
        ).get("max")
        position = 0 if max_position is None else max_position + 1
        await BoardCard.objects.filter(id=card.id).aupdate(list=target, position=position)
        return position

    async def assign_card_member(self, card_id: str, user_id: str) -> bool:
        User = get_user_model()

        card = await self._get_card(card_id)
        user = await User.objects.filter(pk=user_id, is_active=True).afirst()
        if user is None:
            raise ActionError(f"User {user_id} not found.")

        _, created = await CardMember.objects.aget_or_create(card=card, user=user)
        return created

    async def record_automation_log(
        self,
        rule_id: str,
        success: bool,
        message: str,
        *,
        action_type: str = "",
        card_id: str = "",
    ) -> None:
        await AutomationLog.objects.acreate(
            rule_id=rule_id,
            status=AutomationLog.Status.SUCCESS if success else AutomationLog.Status.FAILURE,
            message=message,
            action_type=action_type,
            card_ref=str(card_id)[:64],
        )

"""
Automation Engine for Board Cards.

Handles trigger dispatch, rule matching and action execution for automation
rules. Every action targets the single card named in the triggering event.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, time, timedelta

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from apps.core.automation_base import (
    ActionError,
    ActionResult,
    BaseAutomationEngine,
    TriggerFilter,
)

from .models import AutomationAction, AutomationRule
from .store import AutomationStore, DjangoAutomationStore, RuleSnapshot

logger = logging.getLogger(__name__)

TriggerType = AutomationRule.TriggerType
ActionType = AutomationAction.ActionType

AUTOMATION_DEFAULTS = {
    "EAGER": False,
    "TIMEOUT_SECONDS": 30.0,
    "LOG_LIMIT": 50,
}


def automation_setting(key: str):
    """Read a key of ``settings.AUTOMATION``, falling back to the defaults."""
    return getattr(settings, "AUTOMATION", {}).get(key, AUTOMATION_DEFAULTS[key])


def parse_due_date(value: str | None) -> datetime:
    """
    Interpret the value of a SET_DUE_DATE action.

    Accepts ``TODAY``, ``TOMORROW``, an ISO-8601 datetime or an ISO-8601 date
    (midnight in the current timezone). Raises ActionError otherwise.
    """
    raw = (value or "").strip()
    if not raw:
        raise ActionError("Missing date for SET_DUE_DATE.")

    keyword = raw.upper()
    if keyword == "TODAY":
        return timezone.now()
    if keyword == "TOMORROW":
        return timezone.now() + timedelta(days=1)

    try:
        parsed = parse_datetime(raw)
        if parsed is None:
            day = parse_date(raw)
            if day is not None:
                parsed = datetime.combine(day, time.min)
    except ValueError:
        parsed = None

    if parsed is None:
        raise ActionError(f"Invalid due date: {raw!r}.")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _require(value: str | None, message: str) -> str:
    if not value:
        raise ActionError(message)
    return value


class AutomationEngine(BaseAutomationEngine[str]):
    """Engine to process automation rules and execute actions."""

    def __init__(self, store: AutomationStore | None = None, timeout: float | None = None):
        self.store = store if store is not None else DjangoAutomationStore()
        super().__init__(timeout=timeout)

    def _build_action_registry(self) -> dict:
        return {
            ActionType.ARCHIVE_CARD: self._action_archive_card,
            ActionType.MARK_AS_DONE: self._action_mark_as_done,
            ActionType.ADD_LABEL: self._action_add_label,
            ActionType.REMOVE_LABEL: self._action_remove_label,
            ActionType.MOVE_CARD: self._action_move_card,
            ActionType.ASSIGN_MEMBER: self._action_assign_member,
            ActionType.SET_DUE_DATE: self._action_set_due_date,
        }

    async def process_trigger(
        self,
        board_id: str,
        trigger_type: str,
        trigger_val: str | None,
        context: Mapping[str, str],
    ) -> list[ActionResult]:
        """
        Run every active rule of the board that matches the event.

        Never raises: a failed rule lookup aborts processing and returns an
        empty list, failed actions show up as unsuccessful results.
        """
        logger.info(
            "Processing trigger %s on board %s with value %s",
            trigger_type,
            board_id,
            trigger_val,
        )

        card_id = context.get("card_id") if context else None
        if not card_id:
            logger.error("Trigger %s on board %s has no card_id", trigger_type, board_id)
            return []

        try:
            trigger_type = TriggerType(trigger_type)
            rules = await self.store.find_rules_by_board_and_trigger(
                str(board_id), trigger_type
            )
        except Exception:
            logger.exception("Error loading automation rules for board %s", board_id)
            return []

        logger.info("Found %s candidate rule(s) for %s", len(rules), trigger_type)

        matched = []
        for rule in rules:
            if self._matches(rule, trigger_type, trigger_val):
                logger.info(
                    "Rule %s matches, executing %s action(s)", rule.id, len(rule.actions)
                )
                matched.append(rule)
            else:
                logger.debug(
                    "Rule %s skipped, trigger value %r != %r",
                    rule.id,
                    rule.trigger_val,
                    trigger_val,
                )

        return await self._execute_rules(matched, str(card_id), self._deadline())

    def _matches(self, rule: RuleSnapshot, trigger_type: str, trigger_val: str | None) -> bool:
        try:
            if trigger_type == TriggerType.CARD_MOVED_TO_LIST:
                return TriggerFilter.value_matches(rule, trigger_val)
            if trigger_type == TriggerType.CARD_CREATED:
                return TriggerFilter.value_matches(rule, trigger_val, match_unset=True)
        except Exception:
            logger.exception("Error matching automation rule %s", rule.id)
        return False

    async def _record(self, result: ActionResult, card_id: str) -> None:
        await self.store.record_automation_log(
            result.rule_id,
            result.ok,
            result.message,
            action_type=result.action_type,
            card_id=card_id,
        )

    async def _action_archive_card(self, card_id: str, value: str | None) -> str:
        await self.store.archive_card(card_id)
        return f"Card {card_id} archived."

    async def _action_mark_as_done(self, card_id: str, value: str | None) -> str:
        await self.store.mark_card_done(card_id)
        return f"Card {card_id} marked as done."

    async def _action_add_label(self, card_id: str, value: str | None) -> str:
        label_id = _require(value, "Missing label ID in value for ADD_LABEL.")
        created = await self.store.add_card_label(card_id, label_id)
        if not created:
            return f"Label {label_id} already on card."
        return f"Label {label_id} added to card."

    async def _action_remove_label(self, card_id: str, value: str | None) -> str:
        label_id = _require(value, "Missing label ID in value for REMOVE_LABEL.")
        removed = await self.store.remove_card_label(card_id, label_id)
        if not removed:
            return f"Label {label_id} was not on card."
        return f"Label {label_id} removed."

    async def _action_move_card(self, card_id: str, value: str | None) -> str:
        list_id = _require(value, "Missing list ID in value for MOVE_CARD.")
        position = await self.store.move_card_to_list(card_id, list_id)
        return f"Card moved to list {list_id} at position {position}."

    async def _action_assign_member(self, card_id: str, value: str | None) -> str:
        user_id = _require(value, "Missing user ID in value for ASSIGN_MEMBER.")
        created = await self.store.assign_card_member(card_id, user_id)
        if not created:
            return f"User {user_id} already assigned to card."
        return f"User {user_id} assigned to card."

    async def _action_set_due_date(self, card_id: str, value: str | None) -> str:
        due_date = parse_due_date(value)
        await self.store.set_card_due_date(card_id, due_date)
        return f"Due date set to {due_date.isoformat()}."

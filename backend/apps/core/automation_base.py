"""
Base automation engine for reusable automation logic.

Implements the Action Registry Pattern on top of coroutines: handlers are
looked up by action type and awaited one after another, so a later action
always observes the state left by the earlier ones. A failing action is
recorded and skipped; it never stops the rest of the rule.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")  # Identifier of the entity actions are applied to

ActionHandler = Callable[..., Awaitable[str]]


class ActionError(Exception):
    """An automation action could not be applied to its target."""


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action, or of a rule that matched without actions."""

    rule_id: str
    action_type: str
    ok: bool
    message: str


class BaseAutomationEngine(ABC, Generic[T]):
    """
    Abstract base class for automation engines.

    Subclasses provide the action registry and the persistence of results.
    Rules are expected to expose ``id`` and an ordered ``actions`` iterable
    whose items expose ``action_type`` and ``value``.
    """

    def __init__(self, timeout: float | None = None):
        """
        Initialize the automation engine.

        Args:
            timeout: Soft limit in seconds for one trigger. Once it passes,
                remaining actions are skipped and a timeout is recorded.
        """
        self.timeout = timeout
        self._action_registry = self._build_action_registry()

    @abstractmethod
    def _build_action_registry(self) -> dict[str, ActionHandler]:
        """
        Build the action type to handler mapping.

        Returns:
            Dict mapping action type strings to handler coroutines. Each
            handler takes the entity id and the raw action value and returns
            a human readable success message.
        """

    @abstractmethod
    async def _record(self, result: ActionResult, entity: T) -> None:
        """Persist a single result to the audit log."""

    def _deadline(self) -> float | None:
        if self.timeout is None:
            return None
        return time.monotonic() + self.timeout

    async def _execute_rules(
        self, rules: Iterable, entity: T, deadline: float | None = None
    ) -> list[ActionResult]:
        """
        Execute multiple automation rules on an entity.

        Args:
            rules: Rules to execute, in order
            entity: Entity id the actions target
            deadline: Monotonic timestamp after which actions are skipped

        Returns:
            List of action results across all rules
        """
        results = []
        for rule in rules:
            results.extend(await self._execute_rule(rule, entity, deadline))
        return results

    async def _execute_rule(
        self, rule, entity: T, deadline: float | None = None
    ) -> list[ActionResult]:
        """Execute all actions of one rule sequentially, in stored order."""
        actions = list(rule.actions)
        if not actions:
            result = ActionResult(
                rule_id=rule.id,
                action_type="",
                ok=True,
                message="Rule matched; no actions to execute.",
            )
            await self._safe_record(result, entity)
            return [result]

        results = []
        for index, action in enumerate(actions):
            if deadline is not None and time.monotonic() >= deadline:
                skipped = len(actions) - index
                logger.warning(
                    "Automation rule %s timed out for %s, skipping %s action(s)",
                    rule.id,
                    entity,
                    skipped,
                )
                result = ActionResult(
                    rule_id=rule.id,
                    action_type=action.action_type,
                    ok=False,
                    message=f"Automation timed out; {skipped} remaining action(s) skipped.",
                )
                await self._safe_record(result, entity)
                results.append(result)
                break

            result = await self._execute_action(rule, action, entity)
            await self._safe_record(result, entity)
            results.append(result)
        return results

    async def _execute_action(self, rule, action, entity: T) -> ActionResult:
        """
        Execute a single action on an entity using the registry pattern.

        Never raises: failures are turned into unsuccessful results.
        """
        action_handler = self._action_registry.get(action.action_type)

        if action_handler is None:
            logger.warning("Unknown action type: %s", action.action_type)
            return ActionResult(
                rule_id=rule.id,
                action_type=action.action_type,
                ok=False,
                message=f"Unknown action type: {action.action_type}",
            )

        try:
            message = await action_handler(entity, action.value)
        except ActionError as exc:
            logger.warning(
                "Automation rule %s action %s failed for %s: %s",
                rule.id,
                action.action_type,
                entity,
                exc,
            )
            return ActionResult(rule.id, action.action_type, False, str(exc))
        except Exception as exc:
            logger.exception(
                "Error executing action %s of rule %s for %s",
                action.action_type,
                rule.id,
                entity,
            )
            return ActionResult(
                rule.id, action.action_type, False, str(exc) or type(exc).__name__
            )

        return ActionResult(rule.id, action.action_type, True, message)

    async def _safe_record(self, result: ActionResult, entity: T) -> None:
        try:
            await self._record(result, entity)
        except Exception:
            logger.exception("Failed to write automation log for rule %s", result.rule_id)


class TriggerFilter:
    """
    Utility class for filtering automation rules based on trigger conditions.

    Provides static methods to check if a rule's trigger configuration matches
    the current event context.
    """

    @staticmethod
    def value_matches(rule, trigger_val: str | None, match_unset: bool = False) -> bool:
        """
        Check if the rule's trigger value matches the event's context value.

        Args:
            rule: Automation rule with trigger_val
            trigger_val: Context value of the event (e.g. a list id)
            match_unset: Whether an empty rule value matches any context

        Returns:
            True on exact string equality, or when the rule value is unset
            and match_unset is given
        """
        expected = rule.trigger_val
        if match_unset and not expected:
            return True
        return expected is not None and expected == trigger_val

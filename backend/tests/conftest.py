"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import uuid
from pathlib import Path

import pytest
from django.conf import settings

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure Django settings for testing
if not settings.configured:
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
    os.environ.setdefault("DATABASE_URL", "sqlite:///test.db")

# Initialize Django
import django
django.setup()

from apps.boards.store import ActionSnapshot, RuleSnapshot  # noqa: E402
from apps.core.automation_base import ActionError  # noqa: E402


@pytest.fixture
def api_client():
    """Django REST framework test client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def user_factory(db):
    """Factory for creating test users."""
    from django.contrib.auth import get_user_model

    def create_user(username=None, password="testpass123", **kwargs):
        User = get_user_model()
        if username is None:
            username = f"user-{uuid.uuid4().hex[:8]}"
        return User.objects.create_user(username=username, password=password, **kwargs)

    return create_user


@pytest.fixture
def board_factory(db, user_factory):
    """Factory for creating boards. Extra users become members."""
    from apps.boards.models import Board

    def create_board(title="Test Board", created_by=None, members=()):
        if created_by is None:
            created_by = user_factory()
        board = Board.objects.create(title=title, created_by=created_by)
        if members:
            board.members.add(*members)
        return board

    return create_board


@pytest.fixture
def list_factory(db, board_factory):
    """Factory for creating board lists."""
    from apps.boards.models import BoardList

    def create_list(board=None, title="To Do", position=0):
        if board is None:
            board = board_factory()
        return BoardList.objects.create(board=board, title=title, position=position)

    return create_list


@pytest.fixture
def card_factory(db, list_factory):
    """Factory for creating cards directly, without firing automation."""
    from apps.boards.models import BoardCard

    def create_card(board_list=None, title="Test Card", **kwargs):
        if board_list is None:
            board_list = list_factory()
        return BoardCard.objects.create(list=board_list, title=title, **kwargs)

    return create_card


@pytest.fixture
def label_factory(db):
    """Factory for creating board labels."""
    from apps.boards.models import BoardLabel

    def create_label(board, name="Urgent", color="red"):
        return BoardLabel.objects.create(board=board, name=name, color=color)

    return create_label


@pytest.fixture
def rule_factory(db):
    """Factory for automation rules with ordered actions.

    ``actions`` is a sequence of ``(action_type, value)`` pairs.
    """
    from apps.boards.models import AutomationAction, AutomationRule

    def create_rule(board, trigger_type, trigger_val=None, actions=(), **kwargs):
        defaults = {"name": "Test Rule", "is_active": True}
        defaults.update(kwargs)
        rule = AutomationRule.objects.create(
            board=board,
            trigger_type=trigger_type,
            trigger_val=trigger_val,
            **defaults
        )
        for index, (action_type, value) in enumerate(actions):
            AutomationAction.objects.create(
                rule=rule, action_type=action_type, value=value, sort_order=index
            )
        return rule

    return create_rule


@pytest.fixture
def authenticated_api_client(api_client, user_factory):
    """Authenticated REST API client."""
    user = user_factory()
    api_client.force_authenticate(user=user)
    return api_client, user


@pytest.fixture(autouse=True)
def automation_eager(settings):
    """Run automation triggers inline instead of on the background loop."""
    settings.AUTOMATION = {**settings.AUTOMATION, "EAGER": True}
    yield


class InMemoryAutomationStore:
    """AutomationStore keeping boards, cards and logs in plain dicts."""

    def __init__(self):
        self.rules = []
        self.cards = {}
        self.lists = {}
        self.labels = {}
        self.users = set()
        self.logs = []
        self.fail_lookup = False
        self.fail_log_writes = False

    def add_list(self, list_id, board_id="board-1"):
        self.lists[list_id] = board_id

    def add_card(self, card_id, list_id, board_id="board-1"):
        self.lists.setdefault(list_id, board_id)
        self.cards[card_id] = {
            "list_id": list_id,
            "position": 0,
            "archived": False,
            "is_done": False,
            "labels": [],
            "members": [],
            "due_date": None,
        }
        return self.cards[card_id]

    def add_rule(self, trigger_type, trigger_val=None, actions=(), board_id="board-1", rule_id=None):
        rule = RuleSnapshot(
            id=rule_id or f"rule-{len(self.rules) + 1}",
            board_id=board_id,
            trigger_type=trigger_type,
            trigger_val=trigger_val,
            actions=tuple(ActionSnapshot(action_type, value) for action_type, value in actions),
        )
        self.rules.append(rule)
        return rule

    def _card(self, card_id):
        if card_id not in self.cards:
            raise ActionError(f"Card {card_id} not found.")
        return self.cards[card_id]

    async def find_rules_by_board_and_trigger(self, board_id, trigger_type):
        if self.fail_lookup:
            raise RuntimeError("database unavailable")
        return [
            rule for rule in self.rules
            if rule.board_id == board_id and rule.trigger_type == trigger_type
        ]

    async def archive_card(self, card_id):
        self._card(card_id)["archived"] = True

    async def mark_card_done(self, card_id):
        self._card(card_id)["is_done"] = True

    async def add_card_label(self, card_id, label_id):
        card = self._card(card_id)
        if label_id not in self.labels:
            raise ActionError(f"Label {label_id} not found on this board.")
        if label_id in card["labels"]:
            return False
        card["labels"].append(label_id)
        return True

    async def remove_card_label(self, card_id, label_id):
        card = self._card(card_id)
        if label_id not in card["labels"]:
            return False
        card["labels"].remove(label_id)
        return True

    async def move_card_to_list(self, card_id, list_id):
        card = self._card(card_id)
        if list_id not in self.lists:
            raise ActionError(f"List {list_id} not found on this board.")
        if card["list_id"] == list_id:
            return card["position"]
        positions = [
            other["position"] for other in self.cards.values() if other["list_id"] == list_id
        ]
        card["list_id"] = list_id
        card["position"] = max(positions) + 1 if positions else 0
        return card["position"]

    async def assign_card_member(self, card_id, user_id):
        card = self._card(card_id)
        if user_id not in self.users:
            raise ActionError(f"User {user_id} not found.")
        if user_id in card["members"]:
            return False
        card["members"].append(user_id)
        return True

    async def set_card_due_date(self, card_id, due_date):
        self._card(card_id)["due_date"] = due_date

    async def record_automation_log(self, rule_id, success, message, *, action_type="", card_id=""):
        if self.fail_log_writes:
            raise RuntimeError("log table locked")
        self.logs.append(
            {
                "rule_id": rule_id,
                "status": "SUCCESS" if success else "FAILURE",
                "message": message,
                "action_type": action_type,
                "card_id": card_id,
            }
        )


@pytest.fixture
def memory_store():
    """Empty in-memory automation store."""
    return InMemoryAutomationStore()

"""
Tests for REST API endpoints.
"""

import uuid

import pytest
from django.urls import reverse
from rest_framework import status

from apps.boards.models import AutomationAction, AutomationLog, AutomationRule, BoardCard


@pytest.fixture
def board_setup(authenticated_api_client, board_factory, list_factory):
    api_client, user = authenticated_api_client
    board = board_factory(created_by=user)
    return {
        "client": api_client,
        "user": user,
        "board": board,
        "todo": list_factory(board=board, title="To Do", position=0),
        "done": list_factory(board=board, title="Done", position=1),
    }


def rules_url(board):
    return reverse("board-automation-list", kwargs={"board_id": board.id})


class TestAutomationRuleAPI:
    """Test cases for the board automation endpoints."""

    def test_create_rule_with_actions(self, board_setup):
        board, done = board_setup["board"], board_setup["done"]
        data = {
            "name": "Close finished cards",
            "trigger_type": "CARD_MOVED_TO_LIST",
            "trigger_val": str(done.id),
            "actions": [
                {"action_type": "MARK_AS_DONE"},
                {"action_type": "SET_DUE_DATE", "value": "TODAY"},
            ],
        }

        response = board_setup["client"].post(rules_url(board), data, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        rule = AutomationRule.objects.get(id=response.data["id"])
        assert rule.board == board
        assert [(a.action_type, a.sort_order) for a in rule.actions.all()] == [
            (AutomationAction.ActionType.MARK_AS_DONE, 0),
            (AutomationAction.ActionType.SET_DUE_DATE, 1),
        ]
        assert [a["action_type"] for a in response.data["actions"]] == ["MARK_AS_DONE", "SET_DUE_DATE"]

    def test_moved_to_list_requires_trigger_val(self, board_setup):
        response = board_setup["client"].post(
            rules_url(board_setup["board"]),
            {"trigger_type": "CARD_MOVED_TO_LIST", "trigger_val": "  "},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "trigger_val" in response.data

    def test_card_created_rule_without_trigger_val(self, board_setup):
        response = board_setup["client"].post(
            rules_url(board_setup["board"]),
            {"trigger_type": "CARD_CREATED", "actions": [{"action_type": "ARCHIVE_CARD"}]},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["trigger_val"] is None

    @pytest.mark.parametrize(
        "action",
        [
            {"action_type": "ADD_LABEL"},
            {"action_type": "MOVE_CARD", "value": ""},
            {"action_type": "SET_DUE_DATE", "value": "next week"},
            {"action_type": "SELF_DESTRUCT"},
        ],
    )
    def test_invalid_actions_are_rejected(self, board_setup, action):
        response = board_setup["client"].post(
            rules_url(board_setup["board"]),
            {"trigger_type": "CARD_CREATED", "actions": [action]},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not AutomationRule.objects.exists()

    def test_list_only_shows_board_rules(self, board_setup, board_factory, rule_factory):
        own = rule_factory(board_setup["board"], AutomationRule.TriggerType.CARD_CREATED)
        rule_factory(board_factory(), AutomationRule.TriggerType.CARD_CREATED)

        response = board_setup["client"].get(rules_url(board_setup["board"]))

        assert response.status_code == status.HTTP_200_OK
        assert [r["id"] for r in response.data] == [str(own.id)]

    def test_update_replaces_actions(self, board_setup, rule_factory):
        board = board_setup["board"]
        rule = rule_factory(
            board,
            AutomationRule.TriggerType.CARD_CREATED,
            actions=[(AutomationAction.ActionType.ARCHIVE_CARD, None)],
        )
        url = reverse("board-automation-detail", kwargs={"board_id": board.id, "pk": rule.id})

        response = board_setup["client"].patch(
            url,
            {"is_active": False, "actions": [{"action_type": "MARK_AS_DONE"}]},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        rule.refresh_from_db()
        assert rule.is_active is False
        assert [a.action_type for a in rule.actions.all()] == [AutomationAction.ActionType.MARK_AS_DONE]

    def test_patch_without_actions_keeps_them(self, board_setup, rule_factory):
        board = board_setup["board"]
        rule = rule_factory(
            board,
            AutomationRule.TriggerType.CARD_CREATED,
            actions=[(AutomationAction.ActionType.ARCHIVE_CARD, None)],
        )
        url = reverse("board-automation-detail", kwargs={"board_id": board.id, "pk": rule.id})

        response = board_setup["client"].patch(url, {"name": "Renamed"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert rule.actions.count() == 1

    def test_delete_rule(self, board_setup, rule_factory):
        board = board_setup["board"]
        rule = rule_factory(board, AutomationRule.TriggerType.CARD_CREATED)
        url = reverse("board-automation-detail", kwargs={"board_id": board.id, "pk": rule.id})

        response = board_setup["client"].delete(url)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not AutomationRule.objects.filter(id=rule.id).exists()

    def test_logs_newest_first_and_capped(self, board_setup, board_factory, rule_factory):
        rule = rule_factory(board_setup["board"], AutomationRule.TriggerType.CARD_CREATED, name="Tagger")
        for index in range(55):
            AutomationLog.objects.create(
                rule=rule, status=AutomationLog.Status.SUCCESS, message=f"run {index}"
            )
        other = rule_factory(board_factory(), AutomationRule.TriggerType.CARD_CREATED)
        AutomationLog.objects.create(rule=other, status=AutomationLog.Status.FAILURE, message="other")

        response = board_setup["client"].get(
            reverse("board-automation-logs", kwargs={"board_id": board_setup["board"].id})
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 50
        assert {entry["rule_name"] for entry in response.data} == {"Tagger"}
        assert response.data[0]["trigger_type"] == "CARD_CREATED"

    def test_log_limit_setting(self, board_setup, rule_factory, settings):
        settings.AUTOMATION = {**settings.AUTOMATION, "LOG_LIMIT": 2}
        rule = rule_factory(board_setup["board"], AutomationRule.TriggerType.CARD_CREATED)
        for index in range(3):
            AutomationLog.objects.create(rule=rule, status=AutomationLog.Status.SUCCESS, message=str(index))

        response = board_setup["client"].get(
            reverse("board-automation-logs", kwargs={"board_id": board_setup["board"].id})
        )

        assert len(response.data) == 2

    def test_log_limit_defaults_without_automation_settings(self, board_setup, rule_factory, settings):
        del settings.AUTOMATION
        rule = rule_factory(board_setup["board"], AutomationRule.TriggerType.CARD_CREATED)
        for index in range(51):
            AutomationLog.objects.create(rule=rule, status=AutomationLog.Status.SUCCESS, message=str(index))

        response = board_setup["client"].get(
            reverse("board-automation-logs", kwargs={"board_id": board_setup["board"].id})
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 50


class TestBoardAccess:
    """Board scoping and permissions."""

    def test_requires_authentication(self, api_client, board_factory):
        response = api_client.get(rules_url(board_factory()))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_non_member_is_forbidden(self, authenticated_api_client, board_factory):
        api_client, _ = authenticated_api_client

        response = api_client.get(rules_url(board_factory()))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_member_has_access(self, authenticated_api_client, board_factory):
        api_client, user = authenticated_api_client

        response = api_client.get(rules_url(board_factory(members=[user])))

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.parametrize("board_id", ["not-a-uuid", uuid.uuid4()])
    def test_unknown_board_is_not_found(self, authenticated_api_client, board_id):
        api_client, _ = authenticated_api_client

        response = api_client.get(reverse("board-automation-list", kwargs={"board_id": board_id}))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestCardAPI:
    """Card creation and moves fire automation."""

    def test_create_card_runs_created_rules(self, board_setup, rule_factory, label_factory, django_capture_on_commit_callbacks):
        board, todo = board_setup["board"], board_setup["todo"]
        label = label_factory(board)
        rule_factory(
            board,
            AutomationRule.TriggerType.CARD_CREATED,
            None,
            [(AutomationAction.ActionType.ADD_LABEL, str(label.id))],
        )

        with django_capture_on_commit_callbacks(execute=True):
            response = board_setup["client"].post(
                reverse("board-card-list", kwargs={"board_id": board.id}),
                {"list": str(todo.id), "title": "New card"},
                format="json",
            )

        assert response.status_code == status.HTTP_201_CREATED
        card = BoardCard.objects.get(id=response.data["id"])
        assert card.position == 0
        assert list(card.labels.all()) == [label]

    def test_create_card_in_foreign_list(self, board_setup, list_factory):
        response = board_setup["client"].post(
            reverse("board-card-list", kwargs={"board_id": board_setup["board"].id}),
            {"list": str(list_factory().id), "title": "Nope"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not BoardCard.objects.exists()

    def test_move_card_runs_moved_rules(self, board_setup, card_factory, rule_factory, django_capture_on_commit_callbacks):
        board, done = board_setup["board"], board_setup["done"]
        rule_factory(
            board,
            AutomationRule.TriggerType.CARD_MOVED_TO_LIST,
            str(done.id),
            [(AutomationAction.ActionType.MARK_AS_DONE, None)],
        )
        card = card_factory(board_list=board_setup["todo"])

        with django_capture_on_commit_callbacks(execute=True):
            response = board_setup["client"].post(
                reverse("board-card-move", kwargs={"board_id": board.id, "pk": card.id}),
                {"list": str(done.id)},
                format="json",
            )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["list"] == done.id
        card.refresh_from_db()
        assert card.list_id == done.id
        assert card.is_done is True

    def test_move_responds_even_when_automation_fails(
        self, board_setup, card_factory, rule_factory, django_capture_on_commit_callbacks
    ):
        board, done = board_setup["board"], board_setup["done"]
        rule_factory(
            board,
            AutomationRule.TriggerType.CARD_MOVED_TO_LIST,
            str(done.id),
            [(AutomationAction.ActionType.ADD_LABEL, str(uuid.uuid4()))],
        )
        card = card_factory(board_list=board_setup["todo"])

        with django_capture_on_commit_callbacks(execute=True):
            response = board_setup["client"].post(
                reverse("board-card-move", kwargs={"board_id": board.id, "pk": card.id}),
                {"list": str(done.id)},
                format="json",
            )

        assert response.status_code == status.HTTP_200_OK
        assert AutomationLog.objects.get(card_ref=str(card.id)).status == AutomationLog.Status.FAILURE

    def test_card_from_other_board_is_not_found(self, board_setup, card_factory):
        card = card_factory()

        response = board_setup["client"].post(
            reverse("board-card-move", kwargs={"board_id": board_setup["board"].id, "pk": card.id}),
            {"list": str(board_setup["done"].id)},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

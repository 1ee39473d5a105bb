from django.db import transaction
from rest_framework import serializers

from apps.core.automation_base import ActionError

from .automation import parse_due_date
from .models import AutomationAction, AutomationLog, AutomationRule, BoardCard, BoardList

VALUE_REQUIRED = {
    AutomationAction.ActionType.MOVE_CARD,
    AutomationAction.ActionType.ADD_LABEL,
    AutomationAction.ActionType.REMOVE_LABEL,
    AutomationAction.ActionType.ASSIGN_MEMBER,
    AutomationAction.ActionType.SET_DUE_DATE,
}


class AutomationActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = AutomationAction
        fields = ("id", "action_type", "value", "sort_order")
        read_only_fields = ("id", "sort_order")

    def validate(self, attrs):
        action_type = attrs.get("action_type")
        if not action_type:
            raise serializers.ValidationError({"action_type": "This field is required."})
        value = (attrs.get("value") or "").strip() or None
        if action_type in VALUE_REQUIRED and value is None:
            raise serializers.ValidationError({"value": f"{action_type} requires a value."})
        if action_type == AutomationAction.ActionType.SET_DUE_DATE:
            try:
                parse_due_date(value)
            except ActionError as exc:
                raise serializers.ValidationError({"value": str(exc)}) from exc
        attrs["value"] = value
        return attrs


class AutomationRuleSerializer(serializers.ModelSerializer):
    actions = AutomationActionSerializer(many=True, required=False)

    class Meta:
        model = AutomationRule
        fields = (
            "id",
            "board",
            "name",
            "trigger_type",
            "trigger_val",
            "is_active",
            "actions",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "board", "created_at", "updated_at")

    def validate(self, attrs):
        if "trigger_val" in attrs:
            attrs["trigger_val"] = (attrs["trigger_val"] or "").strip() or None

        trigger_type = attrs.get("trigger_type", getattr(self.instance, "trigger_type", None))
        trigger_val = attrs.get("trigger_val", getattr(self.instance, "trigger_val", None))
        if trigger_type == AutomationRule.TriggerType.CARD_MOVED_TO_LIST and not trigger_val:
            raise serializers.ValidationError(
                {"trigger_val": "A destination list is required for CARD_MOVED_TO_LIST."}
            )
        return attrs

    def _create_actions(self, rule, actions_data):
        AutomationAction.objects.bulk_create(
            [
                AutomationAction(rule=rule, sort_order=index, **action_data)
                for index, action_data in enumerate(actions_data)
            ]
        )

    @transaction.atomic
    def create(self, validated_data):
        actions_data = validated_data.pop("actions", [])
        rule = AutomationRule.objects.create(**validated_data)
        self._create_actions(rule, actions_data)
        return rule

    @transaction.atomic
    def update(self, instance, validated_data):
        actions_data = validated_data.pop("actions", None)
        rule = super().update(instance, validated_data)
        if actions_data is not None:
            rule.actions.all().delete()
            self._create_actions(rule, actions_data)
        return rule


class AutomationLogSerializer(serializers.ModelSerializer):
    rule_name = serializers.CharField(source="rule.name", read_only=True)
    trigger_type = serializers.CharField(source="rule.trigger_type", read_only=True)

    class Meta:
        model = AutomationLog
        fields = (
            "id",
            "rule",
            "rule_name",
            "trigger_type",
            "status",
            "message",
            "action_type",
            "card_ref",
            "created_at",
        )
        read_only_fields = fields


class BoardCardSerializer(serializers.ModelSerializer):
    list = serializers.PrimaryKeyRelatedField(queryset=BoardList.objects.all())

    class Meta:
        model = BoardCard
        fields = (
            "id",
            "list",
            "title",
            "description",
            "position",
            "is_done",
            "archived",
            "due_date",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "position",
            "is_done",
            "archived",
            "due_date",
            "created_at",
            "updated_at",
        )


class CardMoveSerializer(serializers.Serializer):
    list = serializers.PrimaryKeyRelatedField(queryset=BoardList.objects.all())

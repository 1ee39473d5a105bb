import uuid

from django.conf import settings
from django.db import models


class Board(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="created_boards",
    )
    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="boards",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.title

    def is_accessible_by(self, user) -> bool:
        if user is None or not user.is_authenticated:
            return False
        if self.created_by_id == user.id:
            return True
        return self.members.filter(id=user.id).exists()


class BoardList(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    board = models.ForeignKey(Board, on_delete=models.CASCADE, related_name="lists")
    title = models.CharField(max_length=255)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["position", "title"]

    def __str__(self) -> str:
        return f"{self.board.title}: {self.title}"


class BoardLabel(models.Model):
    """Labels that can be attached to cards."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    board = models.ForeignKey(Board, on_delete=models.CASCADE, related_name="labels")
    name = models.CharField(max_length=50)
    color = models.CharField(max_length=20, default="gray")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("board", "name")]
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class BoardCard(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    list = models.ForeignKey(BoardList, on_delete=models.CASCADE, related_name="cards")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    position = models.PositiveIntegerField(default=0)
    is_done = models.BooleanField(default=False)
    archived = models.BooleanField(default=False)
    due_date = models.DateTimeField(blank=True, null=True)
    labels = models.ManyToManyField(
        BoardLabel, through="CardLabel", related_name="cards", blank=True
    )
    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="CardMember",
        related_name="assigned_board_cards",
        blank=True,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="created_board_cards",
        blank=True,
        null=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["position", "-created_at"]

    def __str__(self) -> str:
        return self.title


class CardLabel(models.Model):
    """M2M through model for card labels."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    card = models.ForeignKey(BoardCard, on_delete=models.CASCADE, related_name="label_assignments")
    label = models.ForeignKey(BoardLabel, on_delete=models.CASCADE, related_name="assignments")
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("card", "label")]


class CardMember(models.Model):
    """M2M through model for users assigned to a card."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    card = models.ForeignKey(BoardCard, on_delete=models.CASCADE, related_name="member_assignments")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="card_assignments",
    )
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("card", "user")]


class Activity(models.Model):
    """Board activity feed entry."""

    class ActivityType(models.TextChoices):
        CARD_CREATED = "card_created", "Card Created"
        CARD_MOVED = "card_moved", "Card Moved"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    board = models.ForeignKey(Board, on_delete=models.CASCADE, related_name="activities")
    card = models.ForeignKey(
        BoardCard,
        on_delete=models.SET_NULL,
        related_name="activities",
        blank=True,
        null=True,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="board_activities",
        blank=True,
        null=True,
    )
    activity_type = models.CharField(max_length=32, choices=ActivityType.choices)
    description = models.TextField()
    metadata = models.JSONField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "activities"

    def __str__(self) -> str:
        return self.description


class AutomationRule(models.Model):
    """Automation rules for boards (like Trello Butler)."""

    class TriggerType(models.TextChoices):
        CARD_CREATED = "CARD_CREATED", "Card Created"
        CARD_MOVED_TO_LIST = "CARD_MOVED_TO_LIST", "Card Moved to List"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    board = models.ForeignKey(Board, on_delete=models.CASCADE, related_name="automation_rules")
    name = models.CharField(max_length=255, blank=True, default="")
    trigger_type = models.CharField(max_length=32, choices=TriggerType.choices)
    # For CARD_MOVED_TO_LIST the destination list id, for CARD_CREATED the
    # originating list id or empty for every list.
    trigger_val = models.CharField(max_length=255, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name or f"{self.get_trigger_type_display()} ({self.trigger_val or '*'})"


class AutomationAction(models.Model):
    """Actions to execute when an automation rule triggers."""

    class ActionType(models.TextChoices):
        ARCHIVE_CARD = "ARCHIVE_CARD", "Archive Card"
        MARK_AS_DONE = "MARK_AS_DONE", "Mark as Done"
        ADD_LABEL = "ADD_LABEL", "Add Label"
        REMOVE_LABEL = "REMOVE_LABEL", "Remove Label"
        MOVE_CARD = "MOVE_CARD", "Move Card"
        ASSIGN_MEMBER = "ASSIGN_MEMBER", "Assign Member"
        SET_DUE_DATE = "SET_DUE_DATE", "Set Due Date"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    rule = models.ForeignKey(AutomationRule, on_delete=models.CASCADE, related_name="actions")
    action_type = models.CharField(max_length=32, choices=ActionType.choices)
    # Label id, list id, user id or date depending on action_type.
    value = models.CharField(max_length=255, blank=True, null=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order"]
        unique_together = [("rule", "sort_order")]

    def __str__(self) -> str:
        return f"{self.get_action_type_display()}"


class AutomationLog(models.Model):
    """Log of automation executions for debugging and audit."""

    class Status(models.TextChoices):
        SUCCESS = "SUCCESS", "Success"
        FAILURE = "FAILURE", "Failure"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    rule = models.ForeignKey(AutomationRule, on_delete=models.CASCADE, related_name="logs")
    status = models.CharField(max_length=16, choices=Status.choices)
    message = models.TextField(blank=True, default="")
    action_type = models.CharField(max_length=32, blank=True, default="")
    # Not a foreign key: the card may already be gone when the rule runs.
    card_ref = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.rule} - {self.status}"

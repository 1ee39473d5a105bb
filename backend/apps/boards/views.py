from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response

from .automation import automation_setting
from .models import AutomationLog, AutomationRule, Board, BoardCard
from .serializers import (
    AutomationLogSerializer,
    AutomationRuleSerializer,
    BoardCardSerializer,
    CardMoveSerializer,
)
from .services import create_card, move_card


class BoardScopedMixin:
    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        try:
            board = Board.objects.filter(id=self.kwargs.get("board_id")).first()
        except (DjangoValidationError, ValueError):
            board = None
        if board is None:
            raise NotFound("Board not found")
        if not board.is_accessible_by(request.user):
            raise PermissionDenied("Not a member of this board")
        self.board = board


class AutomationRuleViewSet(BoardScopedMixin, viewsets.ModelViewSet):
    serializer_class = AutomationRuleSerializer

    def get_queryset(self):
        return (
            AutomationRule.objects.filter(board=self.board)
            .prefetch_related("actions")
            .order_by("-created_at")
        )

    def perform_create(self, serializer):
        serializer.save(board=self.board)

    @action(detail=False, methods=["get"])
    def logs(self, request, *args, **kwargs):
        limit = automation_setting("LOG_LIMIT")
        logs = (
            AutomationLog.objects.filter(rule__board=self.board)
            .select_related("rule")
            .order_by("-created_at")[:limit]
        )
        return Response(AutomationLogSerializer(logs, many=True).data)


class BoardCardViewSet(
    BoardScopedMixin,
    mixins.CreateModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = BoardCardSerializer

    def get_queryset(self):
        return BoardCard.objects.filter(list__board=self.board).select_related("list")

    def perform_create(self, serializer):
        board_list = serializer.validated_data["list"]
        if board_list.board_id != self.board.id:
            raise ValidationError({"list": "List is not on this board"})
        serializer.instance = create_card(
            board_list,
            serializer.validated_data["title"],
            created_by=self.request.user,
            description=serializer.validated_data.get("description", ""),
        )

    @action(detail=True, methods=["post"])
    def move(self, request, *args, **kwargs):
        card = self.get_object()
        serializer = CardMoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target_list = serializer.validated_data["list"]
        if target_list.board_id != self.board.id:
            raise ValidationError({"list": "List is not on this board"})

        card = move_card(card, target_list, moved_by=request.user)
        return Response(BoardCardSerializer(card).data, status=status.HTTP_200_OK)

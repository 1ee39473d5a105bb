from django.contrib import admin

from .models import (
    Activity,
    AutomationAction,
    AutomationLog,
    AutomationRule,
    Board,
    BoardCard,
    BoardLabel,
    BoardList,
    CardLabel,
    CardMember,
)


@admin.register(Board)
class BoardAdmin(admin.ModelAdmin):
    list_display = ("title", "created_by", "created_at")
    search_fields = ("title", "created_by__username")
    filter_horizontal = ("members",)


@admin.register(BoardList)
class BoardListAdmin(admin.ModelAdmin):
    list_display = ("title", "board", "position")
    search_fields = ("title", "board__title")


class CardLabelInline(admin.TabularInline):
    model = CardLabel
    extra = 0


class CardMemberInline(admin.TabularInline):
    model = CardMember
    extra = 0


@admin.register(BoardCard)
class BoardCardAdmin(admin.ModelAdmin):
    list_display = ("title", "list", "position", "is_done", "archived", "due_date")
    search_fields = ("title", "list__title", "list__board__title")
    list_filter = ("is_done", "archived")
    inlines = [CardLabelInline, CardMemberInline]


@admin.register(BoardLabel)
class BoardLabelAdmin(admin.ModelAdmin):
    list_display = ("name", "board", "color", "created_at")
    search_fields = ("name", "board__title")
    list_filter = ("color",)


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ("activity_type", "board", "card", "user", "created_at")
    search_fields = ("description", "board__title", "card__title")
    list_filter = ("activity_type",)
    readonly_fields = ("board", "card", "user", "activity_type", "description", "metadata", "created_at")


class AutomationActionInline(admin.TabularInline):
    model = AutomationAction
    # Order follows the rows as displayed; save_formset numbers them.
    exclude = ("sort_order",)
    extra = 1


@admin.register(AutomationRule)
class AutomationRuleAdmin(admin.ModelAdmin):
    list_display = ("name", "board", "trigger_type", "trigger_val", "is_active", "created_at")
    search_fields = ("name", "board__title")
    list_filter = ("trigger_type", "is_active")
    inlines = [AutomationActionInline]

    def save_formset(self, request, form, formset, change):
        if formset.model is not AutomationAction:
            return super().save_formset(request, form, formset, change)

        formset.save(commit=False)
        for action in formset.deleted_objects:
            action.delete()

        # Rows arrive sorted by sort_order with new rows last, so renumbering
        # in order never collides with a value still held by a later row.
        deleted = set(formset.deleted_forms)
        kept = [
            inline_form.instance
            for inline_form in formset.forms
            if inline_form not in deleted
            and not (inline_form.instance._state.adding and not inline_form.has_changed())
        ]
        for index, action in enumerate(kept):
            action.sort_order = index
            action.save()
        formset.save_m2m()


@admin.register(AutomationLog)
class AutomationLogAdmin(admin.ModelAdmin):
    list_display = ("rule", "action_type", "card_ref", "status", "created_at")
    search_fields = ("rule__name", "card_ref", "message")
    list_filter = ("status", "action_type")
    readonly_fields = ("rule", "status", "message", "action_type", "card_ref", "created_at")

from django.db import migrations


def renumber_actions(apps, schema_editor):
    AutomationAction = apps.get_model("boards", "AutomationAction")
    AutomationRule = apps.get_model("boards", "AutomationRule")
    for rule in AutomationRule.objects.all():
        actions = AutomationAction.objects.filter(rule=rule).order_by("sort_order", "pk")
        for index, action in enumerate(actions):
            if action.sort_order != index:
                AutomationAction.objects.filter(pk=action.pk).update(sort_order=index)


class Migration(migrations.Migration):

    dependencies = [
        ("boards", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(renumber_actions, migrations.RunPython.noop),
        migrations.AlterUniqueTogether(
            name="automationaction",
            unique_together={("rule", "sort_order")},
        ),
    ]

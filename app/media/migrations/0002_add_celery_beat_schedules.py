"""
Add Celery Beat schedules for upload and download maintenance.

This migration creates periodic task schedules for:
- Expiring upload sessions whose write URL lapsed without a commit
- Failing upload sessions stuck in processing (worker crash)
- Failing download jobs stuck in processing (worker crash)
"""

from django.db import migrations

TASK_NAMES = [
    "Media: Expire Abandoned Upload Sessions",
    "Media: Fail Stuck Upload Sessions",
    "Media: Fail Stuck Download Jobs",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for media maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # =========================================================================
    # Interval Schedules
    # =========================================================================

    schedule_15min, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )
    schedule_30min, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )

    # =========================================================================
    # Periodic Tasks
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Media: Expire Abandoned Upload Sessions",
        defaults={
            "task": "media.tasks.expire_abandoned_upload_sessions",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Marks pending/uploading sessions past their write URL expiry "
                "as failed and discards their staged blocks."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Media: Fail Stuck Upload Sessions",
        defaults={
            "task": "media.tasks.fail_stuck_upload_sessions",
            "interval": schedule_30min,
            "enabled": True,
            "description": (
                "Fails sessions left in processing longer than the stuck "
                "threshold. Handles worker crashes in deferred mode."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Media: Fail Stuck Download Jobs",
        defaults={
            "task": "media.tasks.fail_stuck_download_jobs",
            "interval": schedule_30min,
            "enabled": True,
            "description": (
                "Fails download jobs left in processing longer than the "
                "archive lock TTL. No automatic retry."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove media periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("media", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]

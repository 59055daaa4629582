from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("media", "0002_add_celery_beat_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="uploadsession",
            name="storage_upload_id",
            field=models.CharField(
                blank=True,
                default="",
                help_text="Multipart upload id issued by the object store, if any",
                max_length=255,
            ),
        ),
        migrations.AddField(
            model_name="downloadjob",
            name="assembly_started_at",
            field=models.DateTimeField(
                blank=True,
                help_text="When a worker took the job and began writing the archive",
                null=True,
            ),
        ),
        migrations.AddField(
            model_name="downloadjob",
            name="heartbeat_at",
            field=models.DateTimeField(
                blank=True,
                help_text="Last progress report from the assembling worker",
                null=True,
            ),
        ),
    ]

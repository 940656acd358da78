import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('actor_id', models.BigIntegerField(blank=True, null=True)),
                ('actor_email', models.EmailField(blank=True, max_length=255)),
                ('action', models.CharField(choices=[
                    ('USER_CREATED', 'User Created'),
                    ('GRANTS_UPDATED', 'Manager Grants Updated'),
                    ('USER_DELETED', 'User Deleted'),
                    ('CUSTOMER_CREATED', 'Customer Created'),
                    ('CUSTOMER_DELETED', 'Customer Deleted'),
                    ('AGENT_ASSIGNED', 'Agent Assigned'),
                    ('AGENT_UNASSIGNED', 'Agent Unassigned'),
                    ('LOAN_CREATED', 'Loan Created'),
                    ('LOAN_ACTIVATED', 'Loan Activated'),
                    ('COLLECTION_RECORDED', 'Collection Recorded'),
                    ('BORROWING_CREATED', 'Borrowing Created'),
                    ('BORROWING_REPAYMENT_RECORDED', 'Borrowing Repayment Recorded'),
                ], max_length=50)),
                ('entity_type', models.CharField(max_length=50)),
                ('entity_id', models.CharField(max_length=64)),
                ('before_data', models.JSONField(blank=True, null=True)),
                ('after_data', models.JSONField(blank=True, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True)),
                ('remarks', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'db_table': 'audit_logs',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['entity_type', 'entity_id'], name='audit_logs_entity__3f1c2a_idx'),
                    models.Index(fields=['actor_id', '-created_at'], name='audit_logs_actor_i_8b7d41_idx'),
                    models.Index(fields=['action'], name='audit_logs_action_5e9a07_idx'),
                ],
            },
        ),
    ]

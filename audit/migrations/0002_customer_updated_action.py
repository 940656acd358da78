from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('audit', '0001_initial'),
    ]

    operations = [
        migrations.AlterField(
            model_name='auditlog',
            name='action',
            field=models.CharField(choices=[
                ('USER_CREATED', 'User Created'),
                ('GRANTS_UPDATED', 'Manager Grants Updated'),
                ('USER_DELETED', 'User Deleted'),
                ('CUSTOMER_CREATED', 'Customer Created'),
                ('CUSTOMER_UPDATED', 'Customer Updated'),
                ('CUSTOMER_DELETED', 'Customer Deleted'),
                ('AGENT_ASSIGNED', 'Agent Assigned'),
                ('AGENT_UNASSIGNED', 'Agent Unassigned'),
                ('LOAN_CREATED', 'Loan Created'),
                ('LOAN_ACTIVATED', 'Loan Activated'),
                ('COLLECTION_RECORDED', 'Collection Recorded'),
                ('BORROWING_CREATED', 'Borrowing Created'),
                ('BORROWING_REPAYMENT_RECORDED', 'Borrowing Repayment Recorded'),
            ], max_length=50),
        ),
    ]

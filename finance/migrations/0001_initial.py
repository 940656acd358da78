import decimal

import django.core.validators
import django.db.models.deletion
import django.db.models.functions.math
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('customer', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Loan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('loan_number', models.CharField(max_length=40, unique=True)),
                ('principal', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.01'))])),
                ('interest_rate', models.DecimalField(decimal_places=2, help_text='Annual interest rate in percent', max_digits=6, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.00'))])),
                ('repayment_frequency', models.CharField(choices=[('DAILY', 'Daily'), ('WEEKLY', 'Weekly'), ('MONTHLY', 'Monthly'), ('QUARTERLY', 'Quarterly'), ('HALF_YEARLY', 'Half Yearly'), ('YEARLY', 'Yearly')], default='MONTHLY', max_length=20)),
                ('tenure_installments', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('start_date', models.DateField()),
                ('outstanding_principal', models.DecimalField(decimal_places=2, max_digits=14)),
                ('outstanding_interest', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Interest accrued and not yet paid', max_digits=14)),
                ('interest_accrued_through', models.DateField(help_text='Interest has been accounted for up to this date')),
                ('total_collected', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=14)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACTIVE', 'Active'), ('CLOSED', 'Closed')], default='PENDING', max_length=20)),
                ('closed_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to='customer.customer')),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='created_loans', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'loans',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['customer', 'status'], name='loans_customer_status_idx'),
                    models.Index(fields=['status'], name='loans_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('outstanding_principal__gte', 0), ('outstanding_principal__lte', models.F('principal'))), name='loan_outstanding_within_principal'),
                    models.CheckConstraint(condition=models.Q(('outstanding_interest__gte', 0)), name='loan_outstanding_interest_non_negative'),
                    models.CheckConstraint(condition=models.Q(('total_collected__gte', 0)), name='loan_total_collected_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Collection',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('principal_amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('interest_amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('payment_method', models.CharField(choices=[('CASH', 'Cash'), ('UPI', 'UPI'), ('BANK_TRANSFER', 'Bank Transfer'), ('CHEQUE', 'Cheque'), ('OTHER', 'Other')], default='CASH', max_length=20)),
                ('receipt_number', models.CharField(max_length=64, unique=True)),
                ('collection_date', models.DateField()),
                ('remarks', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='collections', to='finance.loan')),
                ('collected_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='recorded_collections', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'collections',
                'ordering': ['-collection_date', '-id'],
                'indexes': [
                    models.Index(fields=['loan', '-collection_date'], name='collections_loan_date_idx'),
                    models.Index(fields=['collected_by'], name='collections_agent_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount', django.db.models.functions.math.Round(models.F('principal_amount') + models.F('interest_amount'), 2))), name='collection_amount_equals_split'),
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='collection_amount_positive'),
                    models.CheckConstraint(condition=models.Q(('principal_amount__gte', 0), ('interest_amount__gte', 0)), name='collection_split_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Borrowing',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('lender_name', models.CharField(max_length=200)),
                ('lender_phone', models.CharField(blank=True, max_length=20)),
                ('lender_email', models.EmailField(blank=True, max_length=254)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.01'))])),
                ('interest_rate', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=6)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('CLOSED', 'Closed'), ('DEFAULTED', 'Defaulted')], default='ACTIVE', max_length=20)),
                ('outstanding', models.DecimalField(decimal_places=2, max_digits=14)),
                ('total_repaid', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=14)),
                ('remarks', models.TextField(blank=True)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='created_borrowings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'borrowings',
                'ordering': ['-start_date', '-id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('outstanding', django.db.models.functions.math.Round(models.F('amount') - models.F('total_repaid'), 2))), name='borrowing_outstanding_identity'),
                    models.CheckConstraint(condition=models.Q(('outstanding__gte', 0)), name='borrowing_outstanding_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BorrowingRepayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14)),
                ('repaid_on', models.DateField()),
                ('remarks', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('borrowing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='repayments', to='finance.borrowing')),
                ('recorded_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='recorded_borrowing_repayments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'borrowing_repayments',
                'ordering': ['-repaid_on', '-id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='borrowing_repayment_amount_positive'),
                ],
            },
        ),
    ]

import pandas as pd
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from finance.models import Collection


COLUMNS = {
    'receipt_number': 'Receipt',
    'loan__loan_number': 'Loan',
    'loan__customer__user__email': 'Customer',
    'collection_date': 'Date',
    'payment_method': 'Method',
    'amount': 'Amount',
    'interest_amount': 'Interest',
    'principal_amount': 'Principal',
    'collected_by__email': 'Collected By',
}


class Command(BaseCommand):
    help = 'Export posted collections to a CSV file'

    def add_arguments(self, parser):
        parser.add_argument('--start', help='First collection date (YYYY-MM-DD)')
        parser.add_argument('--end', help='Last collection date (YYYY-MM-DD)')
        parser.add_argument('--output', default='collections.csv', help='CSV file to write')

    def handle(self, *args, **options):
        collections = Collection.objects.order_by('collection_date', 'id')
        for option, lookup in (('start', 'collection_date__gte'), ('end', 'collection_date__lte')):
            if options.get(option):
                value = parse_date(options[option])
                if value is None:
                    raise CommandError(f"Invalid --{option} date: {options[option]}")
                collections = collections.filter(**{lookup: value})

        df = pd.DataFrame.from_records(list(collections.values(*COLUMNS)), columns=list(COLUMNS))
        df = df.rename(columns=COLUMNS)
        df.to_csv(options['output'], index=False)

        total = df['Amount'].sum() if not df.empty else 0
        self.stdout.write(self.style.SUCCESS(
            f"Exported {len(df)} collections totalling {total} to {options['output']}."
        ))

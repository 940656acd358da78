from datetime import date

import pandas as pd
import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from finance.ledger import LedgerEngine
from finance.models import Collection


@pytest.mark.django_db
class TestExportCollections:

    @pytest.fixture
    def postings(self, admin_user, customer, make_loan):
        loan = make_loan(customer, accrued_through=date(2024, 1, 1))
        engine = LedgerEngine()
        for day, amount in ((5, "100.00"), (20, "40.00")):
            engine.post_collection(
                loan.pk, amount, Collection.CASH, collection_date=date(2024, 1, day), posted_by=admin_user
            )
        return loan

    def test_exports_date_range(self, postings, tmp_path):
        output = tmp_path / "collections.csv"
        call_command("export_collections", start="2024-01-10", output=str(output))

        df = pd.read_csv(output)
        assert len(df) == 1
        assert df.loc[0, "Amount"] == 40.0
        assert df.loc[0, "Loan"] == postings.loan_number

    def test_invalid_date(self, tmp_path):
        with pytest.raises(CommandError):
            call_command("export_collections", end="tomorrow", output=str(tmp_path / "x.csv"))

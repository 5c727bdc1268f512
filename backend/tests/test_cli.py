# Overview: Pytest coverage for the flask CLI command groups.

from datetime import date

from shopledger.models import CreditTransaction, Invoice
from shopledger.services import credit_service


class TestLedgerVerify:

    def test_clean_ledger_passes(self, app, db_session, customer_a):
        credit_service.apply_credit(customer_id=customer_a.id, amount_cents=700)

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 0
        assert "Checked 1 chains, 0 broken" in result.output

    def test_tampered_ledger_fails(self, app, db_session, customer_a):
        credit_service.apply_credit(customer_id=customer_a.id, amount_cents=700)
        credit_service.apply_credit(customer_id=customer_a.id, amount_cents=300)
        entry = db_session.query(CreditTransaction).order_by(CreditTransaction.sequence.desc()).first()
        entry.balance_before_cents = 1
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 1
        assert f"FAIL customer {customer_a.id}" in result.output


class TestInvoiceCommands:

    def test_mark_overdue(self, app, db_session, org_a, customer_a):
        invoice = credit_service.create_invoice(
            org_id=org_a.id, customer_id=customer_a.id, total_cents=900, due_date=date(2026, 1, 1)
        )

        result = app.test_cli_runner().invoke(
            args=["invoices", "mark-overdue", "--org-id", str(org_a.id), "--as-of", "2026-02-01"]
        )

        assert result.exit_code == 0
        assert "Marked 1 invoice(s) overdue" in result.output
        assert db_session.get(Invoice, invoice.id).status == "OVERDUE"

    def test_bad_as_of(self, app, db_session, org_a):
        result = app.test_cli_runner().invoke(
            args=["invoices", "mark-overdue", "--org-id", str(org_a.id), "--as-of", "01/02/2026"]
        )
        assert result.exit_code != 0

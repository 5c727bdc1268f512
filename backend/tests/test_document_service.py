# Overview: Pytest coverage for document numbering formats and allocation under concurrency.

import threading

import pytest

from shopledger import create_app
from shopledger.errors import NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.models import Organization
from shopledger.services import document_service
from shopledger.services.document_service import format_document_number, next_document_number


class TestFormats:

    @pytest.mark.parametrize(
        "document_type, expected",
        [
            ("SALE", "SAL-ACM-000042"),
            ("PURCHASE_ORDER", "PO-ACM-000042"),
            ("RECEIPT", "RCV-ACM-000042"),
            ("RETURN", "RET-ACM-000042"),
            ("EXPENSE", "EXP-ACM-000042"),
            ("INVOICE", "INV-000042"),
        ],
    )
    def test_format(self, document_type, expected):
        assert format_document_number(document_type, 42, org_code="ACM") == expected

    def test_short_code_from_org_code(self, db_session):
        org = Organization(name="Lagos Mart", code="la-gos", is_active=True)
        db_session.add(org)
        db_session.commit()
        assert next_document_number(org_id=org.id, document_type="SALE") == "SAL-LAG-000001"

    def test_unknown_type(self, db_session, org_a):
        with pytest.raises(ValidationError):
            next_document_number(org_id=org_a.id, document_type="QUOTE")

    def test_unknown_org(self, db_session):
        with pytest.raises(NotFoundError):
            next_document_number(org_id=424242, document_type="SALE")


class TestSequences:

    def test_counters_are_per_org_and_type(self, db_session, org_a, org_b):
        assert next_document_number(org_id=org_a.id, document_type="SALE") == "SAL-ACM-000001"
        assert next_document_number(org_id=org_a.id, document_type="SALE") == "SAL-ACM-000002"
        assert next_document_number(org_id=org_a.id, document_type="RETURN") == "RET-ACM-000001"
        assert next_document_number(org_id=org_b.id, document_type="SALE") == "SAL-BET-000001"

    def test_invoice_prefix_and_next_number(self, db_session, org_a):
        document_service.configure_invoice_numbering(org_id=org_a.id, prefix="acme-inv", next_number=100)
        assert next_document_number(org_id=org_a.id, document_type="INVOICE") == "ACME-INV-000100"
        assert next_document_number(org_id=org_a.id, document_type="INVOICE") == "ACME-INV-000101"

    def test_next_number_only_moves_forward(self, db_session, org_a):
        document_service.configure_invoice_numbering(org_id=org_a.id, next_number=50)
        next_document_number(org_id=org_a.id, document_type="INVOICE")

        with pytest.raises(ValidationError):
            document_service.configure_invoice_numbering(org_id=org_a.id, next_number=10)

    def test_invalid_prefix(self, db_session, org_a):
        with pytest.raises(ValidationError):
            document_service.configure_invoice_numbering(org_id=org_a.id, prefix="INV 2026!")


class TestConcurrentAllocation:

    def test_threads_never_share_a_number(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'numbering.sqlite3'}",
            'TRANSACTION_RETRY_ATTEMPTS': 5,
            'TRANSACTION_TIMEOUT_SECONDS': 30,
        })
        with app.app_context():
            db.create_all()
            org = Organization(name="Threaded Org", code="THR", is_active=True)
            db.session.add(org)
            db.session.commit()
            org_id = org.id
            # Counter row exists before the threads race on it
            first = next_document_number(org_id=org_id, document_type="SALE")

        numbers = [first]
        errors = []
        lock = threading.Lock()

        def worker():
            with app.app_context():
                try:
                    for _ in range(5):
                        number = next_document_number(org_id=org_id, document_type="SALE")
                        with lock:
                            numbers.append(number)
                except Exception as exc:  # surfaced through the errors list
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(numbers) == 21
        assert len(set(numbers)) == 21
        assert sorted(numbers)[-1] == "SAL-THR-000021"

        with app.app_context():
            db.session.remove()
            db.engine.dispose()

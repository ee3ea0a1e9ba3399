"""
Tests for DocumentClassifier.
"""
import pytest

from conftest import record
from lendflow.analysis_engine.classification import DocumentClassifier, resolve_year
from lendflow.analysis_engine.documents import ExtractionRecord, GenericPayload, ScheduleCPayload
from lendflow.analysis_engine.models import DocumentCategory, DocumentType
from lendflow.exceptions import InvalidInputError


class TestDocumentClassifier:
    """Tests for routing extraction records."""

    @pytest.fixture
    def classifier(self) -> DocumentClassifier:
        return DocumentClassifier()

    def test_routes_each_category(self, classifier):
        """Test each record lands in its bucket."""
        classified = classifier.classify([
            record("W-2", {"wages": 1}),
            record("Bank Statement", {}),
            record("Balance Sheet", {}),
            record("Rent Roll", {}),
            record("Passport", {}),
        ])

        assert [d.document_type for d in classified.tax_forms] == [DocumentType.W2]
        assert len(classified.bank_statements) == 1
        assert len(classified.balance_sheets) == 1
        assert len(classified.rent_rolls) == 1
        assert classified.other[0].category == DocumentCategory.OTHER
        assert isinstance(classified.other[0].payload, GenericPayload)

    def test_profit_and_loss_also_a_tax_form(self, classifier):
        """Test a P&L is routed to both P&L and tax forms."""
        classified = classifier.classify([record("P&L", {"totalRevenue": 100})])

        assert len(classified.profit_and_loss) == 1
        assert len(classified.tax_forms) == 1
        assert len(classified.business_documents()) == 1

    def test_no_record_dropped(self, classifier):
        """Test every record appears in all_documents."""
        records = [record("W2", {}), record("", {}), record("???", {}), record("schedc", {})]
        classified = classifier.classify(records)

        assert len(classified.all_documents) == 4
        assert len(classified.income_documents()) == 4

    def test_payload_is_typed(self, classifier):
        """Test the payload model follows the document type."""
        classified = classifier.classify([record("Sched C", {"grossReceipts": "$1,000"})])

        payload = classified.tax_forms[0].payload
        assert isinstance(payload, ScheduleCPayload)
        assert payload.gross_receipts == 1000.0

    def test_accepts_extraction_records(self, classifier):
        """Test ExtractionRecord instances are accepted as-is."""
        rec = ExtractionRecord(doc_type="W2", data={"wages": 5})
        classified = classifier.classify([rec])

        assert classified.tax_forms[0].record is rec

    def test_rejects_non_list(self, classifier):
        """Test extractions must be a list."""
        with pytest.raises(InvalidInputError):
            classifier.classify({"docType": "W2"})

    def test_rejects_non_mapping_record(self, classifier):
        """Test a record that is not a mapping breaks the contract."""
        with pytest.raises(InvalidInputError) as exc_info:
            classifier.classify([record("W2", {}), "W2"])

        assert exc_info.value.details["position"] == 1

    def test_of_type(self, classifier):
        """Test filtering by document type."""
        classified = classifier.classify([record("1120", {}), record("1120S", {}), record("W2", {})])

        assert len(classified.of_type(DocumentType.FORM_1120, DocumentType.FORM_1120S)) == 2


class TestResolveYear:
    """Tests for tax year resolution."""

    def test_year_precedence(self):
        """Test record year, then payload year, then reference year."""
        classifier = DocumentClassifier()
        docs = classifier.classify([
            record("W2", {"taxYear": 2022}, year=2023),
            record("W2", {"taxYear": "2022"}),
            record("W2", {}),
        ]).all_documents

        assert [resolve_year(d, 2024) for d in docs] == [2023, 2022, 2024]

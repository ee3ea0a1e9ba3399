"""
Document Classifier.

Partitions extraction records into routing buckets. Every record lands in
at least one bucket: a profit-and-loss statement is placed with both the
P&L statements and the tax forms, and unrecognised records are kept in
``other`` so income analysis can still look at them.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import structlog

from lendflow.analysis_engine.documents import (
    BUSINESS_DOCUMENT_TYPES,
    DocumentPayload,
    ExtractionRecord,
    category_for,
    normalize_doc_type,
    parse_payload,
    resolve_document_type,
)
from lendflow.analysis_engine.models import DocumentCategory, DocumentType
from lendflow.exceptions import InvalidInputError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClassifiedDocument:
    """An extraction record with its resolved type and validated payload."""
    record: ExtractionRecord
    document_type: DocumentType
    canonical_label: str
    payload: DocumentPayload
    index: int

    @property
    def category(self) -> DocumentCategory:
        return category_for(self.document_type)

    @property
    def is_business_document(self) -> bool:
        return self.document_type in BUSINESS_DOCUMENT_TYPES


@dataclass(frozen=True)
class ClassifiedDocuments:
    """Routing buckets for one analysis run."""
    tax_forms: Tuple[ClassifiedDocument, ...]
    bank_statements: Tuple[ClassifiedDocument, ...]
    profit_and_loss: Tuple[ClassifiedDocument, ...]
    balance_sheets: Tuple[ClassifiedDocument, ...]
    rent_rolls: Tuple[ClassifiedDocument, ...]
    other: Tuple[ClassifiedDocument, ...]
    all_documents: Tuple[ClassifiedDocument, ...]

    def income_documents(self) -> Tuple[ClassifiedDocument, ...]:
        """Tax forms plus unclassified records."""
        return self.tax_forms + self.other

    def business_documents(self) -> Tuple[ClassifiedDocument, ...]:
        """Tax forms and P&L statements, each document once."""
        return _unique(self.tax_forms + self.profit_and_loss)

    def of_type(self, *doc_types: DocumentType) -> Tuple[ClassifiedDocument, ...]:
        return tuple(d for d in self.all_documents if d.document_type in doc_types)


def _unique(documents: Iterable[ClassifiedDocument]) -> Tuple[ClassifiedDocument, ...]:
    seen = set()
    unique: List[ClassifiedDocument] = []
    for doc in documents:
        if doc.index in seen:
            continue
        seen.add(doc.index)
        unique.append(doc)
    return tuple(unique)


def resolve_year(doc: ClassifiedDocument, reference_year: int) -> int:
    """Tax year of a document: record year, then payload year, then the reference year."""
    if doc.record.year is not None:
        return doc.record.year
    tax_year = getattr(doc.payload, "tax_year", None)
    if tax_year:
        return tax_year
    return reference_year


def to_extraction_record(raw: Any, position: int) -> ExtractionRecord:
    """Accept an ExtractionRecord or a mapping; anything else breaks the input contract."""
    if isinstance(raw, ExtractionRecord):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidInputError(
            "Extraction record must be a mapping",
            details={"position": position, "type": type(raw).__name__},
        )
    return ExtractionRecord.model_validate(raw)


class DocumentClassifier:
    """
    Classifier routing extraction records by canonical document type.

    Classification is a pure table lookup on the normalized label; no record
    is ever dropped.
    """

    _BUCKETS = {
        DocumentCategory.TAX_FORM: "tax_forms",
        DocumentCategory.BANK_STATEMENT: "bank_statements",
        DocumentCategory.PROFIT_AND_LOSS: "profit_and_loss",
        DocumentCategory.BALANCE_SHEET: "balance_sheets",
        DocumentCategory.RENT_ROLL: "rent_rolls",
        DocumentCategory.OTHER: "other",
    }

    def classify_record(self, record: ExtractionRecord, index: int = 0) -> ClassifiedDocument:
        """Resolve one record's type and validate its payload."""
        document_type = resolve_document_type(record.doc_type)
        return ClassifiedDocument(
            record=record,
            document_type=document_type,
            canonical_label=normalize_doc_type(record.doc_type),
            payload=parse_payload(document_type, record.data),
            index=index,
        )

    def classify(self, records: Sequence[Any]) -> ClassifiedDocuments:
        """
        Partition records into buckets.

        Args:
            records: ExtractionRecords or mappings with ``docType``, ``data``
                and optional ``year``.

        Returns:
            ClassifiedDocuments with every record in at least one bucket.

        Raises:
            InvalidInputError: If records is not a list or an item is not a mapping.
        """
        if not isinstance(records, (list, tuple)):
            raise InvalidInputError(
                "Extractions must be a list",
                details={"type": type(records).__name__},
            )

        buckets = {name: [] for name in self._BUCKETS.values()}
        documents: List[ClassifiedDocument] = []

        for index, raw in enumerate(records):
            doc = self.classify_record(to_extraction_record(raw, index), index)
            documents.append(doc)

            buckets[self._BUCKETS[doc.category]].append(doc)
            if doc.category == DocumentCategory.PROFIT_AND_LOSS:
                # A P&L stands in for a tax return in income analysis
                buckets["tax_forms"].append(doc)

            logger.debug(
                "Classified document",
                index=index,
                label=doc.record.doc_type,
                document_type=doc.document_type.value,
            )

        classified = ClassifiedDocuments(
            all_documents=tuple(documents),
            **{name: tuple(docs) for name, docs in buckets.items()},
        )

        logger.info(
            "Classification complete",
            documents=len(documents),
            tax_forms=len(classified.tax_forms),
            bank_statements=len(classified.bank_statements),
            unclassified=len(classified.other),
        )
        return classified


# Singleton instance
_classifier_instance: Optional[DocumentClassifier] = None


def get_document_classifier() -> DocumentClassifier:
    """Get singleton DocumentClassifier instance."""
    global _classifier_instance
    if _classifier_instance is None:
        _classifier_instance = DocumentClassifier()
    return _classifier_instance

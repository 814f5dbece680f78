import unittest
from decimal import Decimal
from unittest.mock import patch

import pytest

from sped_analyzer.dispatch import parse_lines, split_line
from sped_analyzer.models import DocumentFamily
from sped_analyzer.registry import RecordSchema


@pytest.mark.unit
class ParseLinesTests(unittest.TestCase):
    def test_unknown_record_is_skipped_not_raised(self) -> None:
        lines = [
            "|0000|017|0|01012024|31012024|EMPRESA TESTE LTDA|12345678000190||SP|123456789|3550308|||A|1|",
            "|0001|0|",
            "|0150|P001|CLIENTE A LTDA|01058|11222333000181||110042490114||3550308||||",
            "|0200|ITEM01|PRODUTO TESTE|||UN|00|84713012||||",
            "|C001|0|",
            "|C100|1|0|P001|55|00|1|1001||15012024|15012024|1000,00|0|0|0|1000,00|0|0|0|0|1000,00|180,00|",
            "|C190|000|5102|18,00|1000,00|1000,00|180,00|0|0|0|0||",
            "|ZZ99|registro|desconhecido|",
            "|E001|0|",
            "|E110|180,00|0|0|0|0|0|0|0|0|180,00|0|180,00|0|0|",
        ]
        document = parse_lines(lines, family=DocumentFamily.GOODS)
        self.assertEqual(document.metadata.records_decoded, 9)
        self.assertEqual(document.metadata.records_skipped, 1)
        self.assertEqual(document.metadata.errors, [])
        self.assertEqual(document.metadata.lines_total, 10)

    def test_structural_guard_failure_counts_as_skipped(self) -> None:
        document = parse_lines(["|C100|1|0|"], family=DocumentFamily.GOODS)
        self.assertEqual(document.metadata.records_skipped, 1)
        self.assertEqual(document.metadata.records_decoded, 0)
        self.assertEqual(document.documents, [])

    def test_blank_lines_are_ignored(self) -> None:
        document = parse_lines(["", "   ", "|0001|0|"], family=DocumentFamily.GOODS)
        self.assertEqual(document.metadata.records_decoded, 1)
        self.assertEqual(document.metadata.records_skipped, 0)

    def test_decoder_exception_is_collected_with_line_number(self) -> None:
        def explode(fields, context):
            raise ValueError("bad content")

        schema = RecordSchema(type_code="C100", min_fields=2, decode=explode)
        with patch("sped_analyzer.dispatch.lookup_schema", return_value=schema):
            document = parse_lines(["|0001|0|", "|C100|x|"], family=DocumentFamily.GOODS)

        self.assertEqual(len(document.metadata.errors), 2)
        error = document.metadata.errors[1]
        self.assertEqual(error.line_number, 2)
        self.assertIn("ValueError", error.message)
        self.assertIn("bad content", error.message)
        self.assertEqual(document.metadata.records_decoded, 0)


def test_split_line_keeps_leading_and_trailing_empty_fields():
    assert split_line("|E001|0|\n") == ["", "E001", "0", ""]


def test_goods_document_buckets(goods_document):
    assert goods_document.company.name == "EMPRESA TESTE LTDA"
    assert goods_document.company.uf == "SP"
    assert goods_document.metadata.records_decoded == 12
    assert len(goods_document.documents) == 1
    assert goods_document.documents[0].total_value == Decimal("50000.00")
    assert len(goods_document.analytic) == 1
    assert goods_document.debits["icms"][0].balance == Decimal("5000.00")
    assert goods_document.periods[0].days == 31


def test_relations_are_linked(goods_document):
    invoice = goods_document.documents[0]
    assert invoice.participant is not None
    assert invoice.participant.name == "CLIENTE A LTDA"
    assert goods_document.line_items[0].item_master.description == "PRODUTO TESTE"


def test_icms_balance_is_reconciled(goods_document):
    assert len(goods_document.validations) == 1
    assert goods_document.validations[0].is_valid


def test_contributions_category_totals(contributions_document):
    totals = contributions_document.category_totals["pis"]
    assert totals.debits == Decimal("650.00")
    assert totals.credits == Decimal("200.00")
    assert totals.total == Decimal("450.00")
    assert totals.adjusted_base == Decimal("50000.00")


def test_contributions_document_content(contributions_document):
    assert contributions_document.regimes["contributions"].description == "non-cumulative"
    aggregate = contributions_document.aggregates["pis"][0]
    assert aggregate.layout == "current"
    assert aggregate.gross_revenue == Decimal("50000.00")
    assert aggregate.rate == Decimal("1.3000")
    assert all(outcome.is_valid for outcome in contributions_document.validations)


def test_income_tax_document(income_tax_lines):
    document = parse_lines(income_tax_lines, family=DocumentFamily.INCOME_TAX)
    assert document.regimes["income_tax"].description == "lucro real"
    assert document.debits["irpj"][0].payable == Decimal("1500.00")
    assert document.debits["csll"][0].payable == Decimal("900.00")
    assert len(document.detail["computation_n670"]) == 1
    assert len(document.income_statement) == 4


def test_accounting_document(accounting_lines):
    document = parse_lines(accounting_lines, family=DocumentFamily.ACCOUNTING)
    assert [account.name for account in document.accounts][0] == "CLIENTES A RECEBER"
    assert document.balance_sheet[1].final_value == Decimal("20000.00")
    assert document.periods[0].days == 366


def test_family_is_classified_when_not_given(contributions_lines):
    document = parse_lines(contributions_lines)
    assert document.family is DocumentFamily.CONTRIBUTIONS

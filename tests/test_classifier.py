import unittest

import pytest

from sped_analyzer.classifier import classify, classify_by_content, classify_by_filename
from sped_analyzer.models import DocumentFamily


@pytest.mark.unit
class FilenameClassificationTests(unittest.TestCase):
    def test_contributions_names(self) -> None:
        for name in ("SPED_EFD_CONTRIBUICOES_2024.txt", "pis_cofins_jan.txt", "EFD-PIS-012024.txt"):
            with self.subTest(name=name):
                self.assertEqual(classify_by_filename(name), DocumentFamily.CONTRIBUTIONS)

    def test_income_tax_names(self) -> None:
        self.assertEqual(classify_by_filename("ECF_2024.txt"), DocumentFamily.INCOME_TAX)
        self.assertEqual(classify_by_filename("empresa_ecf_2024.txt"), DocumentFamily.INCOME_TAX)

    def test_accounting_names(self) -> None:
        self.assertEqual(classify_by_filename("ecd-2024.txt"), DocumentFamily.ACCOUNTING)
        self.assertEqual(classify_by_filename("sped_ecd_2024.txt"), DocumentFamily.ACCOUNTING)

    def test_goods_names(self) -> None:
        self.assertEqual(classify_by_filename("efd_icms_ipi_012024.txt"), DocumentFamily.GOODS)
        self.assertEqual(classify_by_filename("SPED_FISCAL.txt"), DocumentFamily.GOODS)

    def test_ledger_extension_defaults_to_goods(self) -> None:
        self.assertEqual(classify_by_filename("arquivo.sped"), DocumentFamily.GOODS)

    def test_unknown_name(self) -> None:
        self.assertIsNone(classify_by_filename("report.txt"))
        self.assertIsNone(classify_by_filename(None))


def test_content_classification_counts_signature_codes(contributions_lines):
    assert classify_by_content(contributions_lines) == DocumentFamily.CONTRIBUTIONS


def test_content_classification_of_accounting(accounting_lines):
    assert classify_by_content(accounting_lines) == DocumentFamily.ACCOUNTING


def test_no_signature_defaults_to_goods():
    assert classify_by_content(["", "|0000|x|", "|9999|2|"]) == DocumentFamily.GOODS


def test_filename_hint_wins_over_content(contributions_lines):
    assert classify(contributions_lines, "ECD_2024.txt") == DocumentFamily.ACCOUNTING
    assert classify(contributions_lines, "dados.txt") == DocumentFamily.CONTRIBUTIONS

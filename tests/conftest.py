import pytest

from sped_analyzer.dispatch import parse_lines
from sped_analyzer.models import DocumentFamily, ParsedDocument


@pytest.fixture
def goods_lines() -> list[str]:
    """EFD ICMS/IPI ledger: one output invoice and an ICMS apuration of 8000 debits / 3000 credits."""
    return [
        "|0000|017|0|01012024|31012024|EMPRESA TESTE LTDA|12345678000190||SP|123456789|3550308|||A|1|",
        "|0001|0|",
        "|0150|P001|CLIENTE A LTDA|01058|11222333000181||110042490114||3550308||||",
        "|0200|ITEM01|PRODUTO TESTE|||UN|00|84713012||||",
        "|C001|0|",
        "|C100|1|0|P001|55|00|1|1001|35240112345678000190550010000010011000010010|15012024|15012024|"
        "50000,00|0|0|0|50000,00|0|0|0|0|50000,00|9000,00|0|0|0|0|0|0|0|",
        "|C170|1|ITEM01|PRODUTO TESTE|100|UN|50000,00|0|0|000|5102|001|50000,00|18,00|9000,00|0|0|0|",
        "|C190|000|5102|18,00|50000,00|50000,00|9000,00|0|0|0|0||",
        "|E001|0|",
        "|E100|01012024|31012024|",
        "|E110|8000,00|0|0|0|3000,00|0|0|0|0|5000,00|0|5000,00|0|0|",
        "|9999|12|",
    ]


@pytest.fixture
def contributions_lines() -> list[str]:
    """EFD Contribuicoes ledger: PIS of 650 on revenue of 50000 with 200 of credits."""
    return [
        "|0000|006|0|||01012024|31012024|EMPRESA TESTE LTDA|12345678000190|SP|3550308||00|2|",
        "|0001|0|",
        "|0110|1|1|1||",
        "|M001|0|",
        "|M100|101|0|12121,21|1,65|0|0|200,00|0|0|0|200,00|0|200,00|0|",
        "|M200|650,00|200,00|0|450,00|0|0|450,00|0|0|0|0|450,00|",
        "|M210|01|50000,00|50000,00|0|0|50000,00|1,3000|0|0|650,00|0|0|0|0|650,00|",
        "|9999|8|",
    ]


@pytest.fixture
def income_tax_lines() -> list[str]:
    """ECF ledger with an income statement and IRPJ/CSLL computation lines."""
    return [
        "|0000|LECF|0009|12345678000190|EMPRESA TESTE LTDA|0||||01012024|31122024|",
        "|0010||N|N|1|A|",
        "|L001|0|",
        "|L300|3.01.01.01.01|RECEITA BRUTA|A|5|04|3.01.01.01|100000,00|C|",
        "|L300|3.01.01.03.01|(-) DEDUCOES DA RECEITA BRUTA|A|5|04|3.01.01.03|10000,00|D|",
        "|L300|3.02.01.01.01|CUSTO DAS MERCADORIAS VENDIDAS|A|5|04|3.02.01.01|50000,00|D|",
        "|L300|3.04.01.01|DESPESAS OPERACIONAIS|A|4|04|3.04.01|20000,00|D|",
        "|N001|0|",
        "|N630|26|IMPOSTO DE RENDA A PAGAR|1500,00|",
        "|N670|20|CSLL A PAGAR|900,00|",
        "|N670|1|BASE DE CALCULO DA CSLL|10000,00|",
    ]


@pytest.fixture
def accounting_lines() -> list[str]:
    """ECD ledger with receivable, payable and inventory closing balances."""
    return [
        "|0000|LECD|01012024|31122024|EMPRESA TESTE LTDA|12345678000190|SP|123456789|3550308||||",
        "|I001|0|",
        "|I050|01012024|01|A|4|1.1.2.01|1.1.2|CLIENTES A RECEBER|",
        "|I050|01012024|02|A|4|2.1.1.01|2.1.1|FORNECEDORES NACIONAIS|",
        "|I050|01012024|01|A|4|1.1.3.01|1.1.3|ESTOQUE DE MERCADORIAS|",
        "|I150|01012024|31122024|",
        "|I155|1.1.2.01||0|D|0|0|10000,00|D|",
        "|I155|2.1.1.01||0|C|0|0|20000,00|C|",
        "|I155|1.1.3.01||0|D|0|0|15000,00|D|",
    ]


@pytest.fixture
def goods_document(goods_lines: list[str]) -> ParsedDocument:
    return parse_lines(goods_lines, family=DocumentFamily.GOODS, filename="efd_icms_ipi.txt")


@pytest.fixture
def contributions_document(contributions_lines: list[str]) -> ParsedDocument:
    return parse_lines(contributions_lines, family=DocumentFamily.CONTRIBUTIONS, filename="efd_contribuicoes.txt")

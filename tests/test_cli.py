import json
from unittest.mock import patch

import pytest

from sped_analyzer.cli.consolidate import main as consolidate_main
from sped_analyzer.cli.parse import main as parse_main


@pytest.fixture
def ledger_dir(tmp_path, goods_lines, contributions_lines):
    """Write both EFD fixtures to disk the way the tax authority exports them."""
    (tmp_path / "efd_icms_ipi.txt").write_bytes("\r\n".join(goods_lines).encode("latin-1"))
    (tmp_path / "efd_contribuicoes.txt").write_bytes("\r\n".join(contributions_lines).encode("latin-1"))
    return tmp_path


@pytest.mark.e2e
def test_parse_cli_json(ledger_dir, capsys):
    test_args = ["sped-parse", str(ledger_dir / "efd_icms_ipi.txt"), "--json"]
    with patch("sys.argv", test_args):
        parse_main()

    data = json.loads(capsys.readouterr().out)
    assert data["metadata"]["family"] == "goods"
    assert data["metadata"]["records_decoded"] == 12
    assert data["company"]["name"] == "EMPRESA TESTE LTDA"
    assert data["buckets"]["documents"] == 1
    assert all(outcome["is_valid"] for outcome in data["validations"])


@pytest.mark.e2e
def test_parse_cli_writes_json_file(ledger_dir, capsys):
    output = ledger_dir / "out" / "parsed.json"
    test_args = ["sped-parse", str(ledger_dir / "efd_contribuicoes.txt"), "--json-out", str(output)]
    with patch("sys.argv", test_args):
        parse_main()

    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["metadata"]["family"] == "contributions"
    assert "EFD Contribuicoes" in capsys.readouterr().out


@pytest.mark.e2e
def test_parse_cli_missing_file(tmp_path):
    with patch("sys.argv", ["sped-parse", str(tmp_path / "missing.txt")]):
        with pytest.raises(SystemExit) as excinfo:
            parse_main()
    assert excinfo.value.code == 1


@pytest.mark.e2e
def test_consolidate_cli_pipeline(ledger_dir, capsys):
    json_out = ledger_dir / "report.json"
    md_out = ledger_dir / "report.md"
    test_args = [
        "sped-consolidate",
        str(ledger_dir / "efd_icms_ipi.txt"),
        str(ledger_dir / "efd_contribuicoes.txt"),
        "--json-out",
        str(json_out),
        "--md-out",
        str(md_out),
    ]
    with patch("sys.argv", test_args):
        consolidate_main()

    data = json.loads(json_out.read_text(encoding="utf-8"))
    assert data["families"] == ["goods", "contributions"]
    assert data["tax_composition"]["total_liability"] == 5450.0
    assert data["tax_composition"]["total_effective_rate"] == 10.9
    assert data["quality"]["level"] == "High"
    assert len(data["transition"]["years"]) == 8
    assert "# SPED Consolidated Report" in md_out.read_text(encoding="utf-8")

    out = capsys.readouterr().out
    assert "efd_icms_ipi.txt: EFD ICMS/IPI" in out
    assert "Quality: High" in out


@pytest.mark.e2e
def test_consolidate_cli_options_file(ledger_dir):
    options = ledger_dir / "options.json"
    options.write_text(json.dumps({"include_transition": False, "estimate_missing": True}), encoding="utf-8")
    json_out = ledger_dir / "report.json"
    test_args = [
        "sped-consolidate",
        str(ledger_dir / "efd_icms_ipi.txt"),
        str(ledger_dir / "efd_contribuicoes.txt"),
        "--options",
        str(options),
        "--json-out",
        str(json_out),
        "--md-out",
        str(ledger_dir / "report.md"),
    ]
    with patch("sys.argv", test_args):
        consolidate_main()

    data = json.loads(json_out.read_text(encoding="utf-8"))
    assert data["transition"] is None
    assert data["tax_composition"]["figures"]["cofins_debit"]["source"] == "estimated"


@pytest.mark.e2e
def test_consolidate_cli_rejects_invalid_options(ledger_dir):
    options = ledger_dir / "options.json"
    options.write_text(json.dumps({"estimate": True}), encoding="utf-8")
    test_args = ["sped-consolidate", str(ledger_dir / "efd_icms_ipi.txt"), "--options", str(options)]
    with patch("sys.argv", test_args):
        with pytest.raises(SystemExit) as excinfo:
            consolidate_main()
    assert excinfo.value.code == 1


@pytest.mark.e2e
def test_consolidate_cli_missing_ledger(tmp_path):
    with patch("sys.argv", ["sped-consolidate", str(tmp_path / "missing.txt")]):
        with pytest.raises(SystemExit) as excinfo:
            consolidate_main()
    assert excinfo.value.code == 1


@pytest.mark.e2e
def test_consolidate_cli_rejects_unbalanced_schedule(ledger_dir):
    options = ledger_dir / "options.json"
    options.write_text(json.dumps({"schedule": {"2027": {"current": 0.6, "target": 0.6}}}), encoding="utf-8")
    test_args = ["sped-consolidate", str(ledger_dir / "efd_icms_ipi.txt"), "--options", str(options)]
    with patch("sys.argv", test_args):
        with pytest.raises(SystemExit) as excinfo:
            consolidate_main()
    assert excinfo.value.code == 1

import pytest

from sped_analyzer.utils import console


def test_print_table(capsys):
    console.print_table("Taxes", ["Tax", "Net"], [["ICMS", "R$ 5.000,00"], ["PIS", "R$ 450,00"]])
    captured = capsys.readouterr()
    assert "Taxes" in captured.out
    assert "ICMS" in captured.out
    assert "R$ 450,00" in captured.out


def test_print_table_without_rows(capsys):
    console.print_table("Buckets", ["Bucket", "Entries"], [])
    assert "Buckets: (no data)" in capsys.readouterr().out


def test_print_messages(capsys):
    console.print_success("done")
    console.print_warning("careful")
    captured = capsys.readouterr()
    assert "SUCCESS: done" in captured.out
    assert "WARNING: careful" in captured.out


def test_print_error_without_exit(capsys):
    console.print_error("bad input")
    assert "ERROR: bad input" in capsys.readouterr().out


def test_print_error_exits():
    with pytest.raises(SystemExit) as excinfo:
        console.print_error("fatal", exit_code=3)
    assert excinfo.value.code == 3

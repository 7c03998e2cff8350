"""Tests for the command line interface."""
import pytest

from sunat_pos.cli import main
from sunat_pos.models import DocumentKind


@pytest.fixture(autouse=True)
def cli_env(monkeypatch):
    monkeypatch.setenv("SUNAT_SUCCESS_RATE", "1.0")
    monkeypatch.setenv("SUNAT_LATENCY", "0")
    monkeypatch.setenv("SALE_NOTE_DELAY", "0")
    monkeypatch.setenv("SUNAT_ENV", "beta")
    monkeypatch.setenv("COMPANY_RUC", "20123456789")
    monkeypatch.delenv("POS_LOG_FILE", raising=False)


class TestCli:
    """Tests for the CLI commands."""

    def test_demo_receipt(self, capsys):
        """Test that the demo issues an accepted receipt."""
        assert main(["demo", "--kind", "receipt"]) == 0
        out = capsys.readouterr().out
        assert "Boleta B001-00000001  [ACCEPTED]" in out
        assert "TOTAL:" in out

    def test_demo_sale_note(self, capsys):
        """Test that the demo sale note is internal."""
        assert main(["demo", "--kind", "sale-note"]) == 0
        assert "NV01-00000001  [INTERNAL]" in capsys.readouterr().out

    def test_demo_rejection_exit_code(self, monkeypatch):
        """Test that a rejected demo document exits non-zero."""
        monkeypatch.setenv("SUNAT_SUCCESS_RATE", "0")
        assert main(["demo"]) == 1

    def test_render_then_inspect(self, tmp_path, capsys):
        """Test that a rendered invoice file can be inspected."""
        target = tmp_path / "invoice.xml"
        assert main(["render", "--kind", "invoice", "-o", str(target)]) == 0
        assert target.read_bytes().startswith(b'<?xml version="1.0" encoding="ISO-8859-1"')

        assert main(["inspect", str(target)]) == 0
        out = capsys.readouterr().out
        assert "F001-00000001 (type 01)" in out
        assert "IGV" in out and "EXO" in out and "INA" in out

    def test_render_to_stdout(self, capsys):
        """Test that render prints XML without an output file."""
        assert main(["render", "--kind", "receipt"]) == 0
        assert "<cbc:ID>B001-00000001</cbc:ID>" in capsys.readouterr().out

    def test_invalid_config(self, monkeypatch):
        """Test that configuration errors stop the command."""
        monkeypatch.setenv("COMPANY_RUC", "123")
        assert main(["demo"]) == 1

    def test_no_command_prints_help(self, capsys):
        """Test that running without a command shows usage."""
        assert main([]) == 1
        assert "usage:" in capsys.readouterr().out

    def test_kind_choices_cover_issuable_kinds(self):
        """Test that every checkout kind has a CLI name."""
        from sunat_pos.cli import KINDS
        assert set(KINDS.values()) == {DocumentKind.INVOICE, DocumentKind.RECEIPT, DocumentKind.SALE_NOTE}

"""Tests for log redaction and the entry point."""

import logging
import sys

import pytest

from permaskills_mcp_server import RedactingFilter, configure_logging
from permaskills_mcp_server.__main__ import main

SEED = "abandon ability able about above absent absorb abstract absurd abuse access accident"


def _record(msg, *args) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


class TestRedactingFilter:
    def test_seed_phrase_in_args(self):
        record = _record("Seed=%s.", SEED)
        assert RedactingFilter().filter(record)
        assert record.getMessage() == "Seed=[REDACTED_SEED_PHRASE]."
        assert record.args is None

    def test_key_material(self):
        record = _record("jwk d=" + "Q" * 100)
        RedactingFilter().filter(record)
        assert record.getMessage() == "jwk d=[REDACTED_PRIVATE_KEY]"

    def test_clean_record_untouched(self):
        record = _record("installed %s", "pdf-tools")
        RedactingFilter().filter(record)
        assert record.msg == "installed %s"
        assert record.args == ("pdf-tools",)


class TestConfigureLogging:
    def test_filter_added_once(self):
        root = logging.getLogger()
        handler = logging.StreamHandler()
        root.addHandler(handler)
        try:
            configure_logging("DEBUG")
            configure_logging("DEBUG")
            assert sum(isinstance(f, RedactingFilter) for f in handler.filters) == 1
        finally:
            root.removeHandler(handler)


class TestMain:
    def test_missing_config_file(self, monkeypatch, tmp_path, capsys):
        argv = ["permaskills_mcp_server", "--config", str(tmp_path / "x")]
        monkeypatch.setattr(sys, "argv", argv)
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "config file not found" in capsys.readouterr().err

    def test_startup_error_exit_code(self, monkeypatch, tmp_path, capsys):
        config = tmp_path / "server.json"
        config.write_text('{"gateway": "http://insecure.example"}')
        monkeypatch.setattr(sys, "argv", ["permaskills_mcp_server", "--config", str(config)])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "HTTPS" in capsys.readouterr().err

"""Tests for the uplog command-line entry point."""

from __future__ import annotations

import io

import pytest

import uplog.cli as cli
from uplog import __version__
from uplog.config import StorageConfig, UplogConfig, load_config, write_config
from uplog.observability import get_logger
from uplog.observability import logger as logger_module
from uplog.pipeline import Pipeline

CREDENTIAL = "AKIATESTKEY:test-secret-1234"


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "uplog" / "config.toml"
    write_config(path, UplogConfig(storage=StorageConfig(access_grant=CREDENTIAL)))
    return path


@pytest.fixture
def memory_pipeline(monkeypatch, backend):
    """Route the CLI's pipeline to the in-memory backend."""
    monkeypatch.setattr(cli, "Pipeline", lambda config: Pipeline(config, backend=backend))
    return backend


class TestInitConf:
    def test_writes_default_config(self, tmp_path, capsys):
        path = tmp_path / "fresh" / "config.toml"
        assert cli.main(["--config", str(path), "--init-conf"]) == cli.EXIT_OK
        assert load_config(path) == UplogConfig()
        assert "wrote default config" in capsys.readouterr().out

    def test_unwritable_location(self, tmp_path, capsys):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        code = cli.main(["--config", str(blocker / "config.toml"), "--init-conf"])
        assert code == cli.EXIT_FAILURE
        assert capsys.readouterr().err.startswith("error: ")


class TestRun:
    def test_missing_config(self, tmp_path, capsys):
        code = cli.main(["--config", str(tmp_path / "none.toml"), "x.png"])
        assert code == cli.EXIT_FAILURE
        assert "could not load config" in capsys.readouterr().err

    def test_no_input_file(self, config_path, capsys):
        assert cli.main(["--config", str(config_path)]) == cli.EXIT_USAGE
        assert "no input file specified" in capsys.readouterr().err

    def test_config_is_rewritten_with_new_keys(self, tmp_path, capsys):
        path = tmp_path / "config.toml"
        path.write_text('[storage]\naccess_grant = "a:b"\n', encoding="utf-8")
        cli.main(["--config", str(path)])
        text = path.read_text(encoding="utf-8")
        assert "[webp]" in text
        assert "format_url" in text

    def test_upload_prints_url(self, config_path, memory_pipeline, tmp_path, png_bytes, capsys):
        src = tmp_path / "shot.png"
        src.write_bytes(png_bytes)
        assert cli.main(["--config", str(config_path), str(src)]) == cli.EXIT_OK

        out = capsys.readouterr().out.splitlines()
        assert out[0] == "uploaded file to:"
        assert out[1].startswith("https://example.com/uplog/folder//")
        assert out[1].endswith(".webp")
        assert len(memory_pipeline.objects) == 1

    def test_pipeline_error(self, config_path, memory_pipeline, tmp_path, capsys):
        memory_pipeline.fail_write_after = 0
        src = tmp_path / "notes.txt"
        src.write_text("hello\n", encoding="utf-8")
        assert cli.main(["--config", str(config_path), str(src)]) == cli.EXIT_FAILURE
        err = capsys.readouterr().err
        assert "error: TRANSFER_ERROR:" in err

    def test_missing_input_file(self, config_path, memory_pipeline, tmp_path, capsys):
        code = cli.main(["--config", str(config_path), str(tmp_path / "ghost.png")])
        assert code == cli.EXIT_FAILURE
        assert "DETECTION_ERROR" in capsys.readouterr().err

    def test_secret_not_logged_at_debug(self, config_path, memory_pipeline, tmp_path):
        src = tmp_path / "notes.txt"
        src.write_text("hello\n", encoding="utf-8")
        get_logger()
        previous = logger_module._root_handler.stream
        sink = io.StringIO()
        get_logger(stream=sink)
        try:
            cli.main(["--log-level", "debug", "--config", str(config_path), str(src)])
        finally:
            get_logger(level="WARNING", stream=previous)
        logged = sink.getvalue()
        assert "config loaded" in logged
        assert "...1234" in logged
        assert CREDENTIAL not in logged


class TestParser:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_log_level_is_case_insensitive(self):
        args = cli.build_parser().parse_args(["--log-level", "info"])
        assert args.log_level == "INFO"

    def test_unknown_log_level(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--log-level", "chatty"])

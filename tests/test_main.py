"""
Tests for the command line entry point.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from rdb_analyzer import __main__ as cli
from rdb_analyzer.events import ParseError
from rdb_analyzer.stats import write_stats


def run_cli(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


class TestArgumentValidation:
    """Test suite for usage errors."""

    def test_no_arguments(self, capsys):
        assert run_cli([]) == 1
        assert "Usage: rdbanalyzer" in capsys.readouterr().out

    def test_missing_output_mode(self, tmp_path, capsys):
        assert run_cli([str(tmp_path / "dump.rdb")]) == 1
        assert "Usage: rdbanalyzer" in capsys.readouterr().out

    def test_missing_rdb_file(self, tmp_path):
        assert run_cli(["-o", str(tmp_path / "out.svg")]) == 1

    def test_output_modes_are_exclusive(self, tmp_path, capsys):
        assert run_cli(["-o", "out.svg", "-l", ":8080", "dump.rdb"]) == 1
        assert "mutually exclusive" in capsys.readouterr().out

    def test_debug_render_needs_output(self, tmp_path, capsys):
        assert run_cli(["--debug-render", "stats.json"]) == 1
        assert "--debug-render" in capsys.readouterr().out


class TestRuns:
    """Test suite for complete command line runs."""

    def test_nonexistent_rdb_file(self, tmp_path):
        code = run_cli(["-o", str(tmp_path / "out.svg"), str(tmp_path / "missing.rdb")])

        assert code == 1
        assert not (tmp_path / "out.svg").exists()

    def test_parse_error_exits_without_output(self, tmp_path):
        rdb = tmp_path / "dump.rdb"
        rdb.write_bytes(b"garbage")

        with patch.object(cli, "aggregate", AsyncMock(side_effect=ParseError("bad magic"))):
            code = run_cli(["-o", str(tmp_path / "out.svg"), str(rdb)])

        assert code == 1
        assert not (tmp_path / "out.svg").exists()

    def test_parse_and_write_svg(self, tmp_path, sample_stats):
        rdb = tmp_path / "dump.rdb"
        rdb.write_bytes(b"REDIS0009")
        out = tmp_path / "out.svg"
        stats_out = tmp_path / "stats.json"

        with patch.object(cli, "aggregate", AsyncMock(return_value=sample_stats)) as aggregate_mock:
            cli.main(["-o", str(out), "--debug-stats-output", str(stats_out), str(rdb)])

        assert aggregate_mock.await_args.args[1] == str(rdb)
        assert b"Keys: 10" in out.read_bytes()
        assert json.loads(stats_out.read_text())["keys"]["count"] == 10

    def test_only_stats_skips_rendering(self, tmp_path, sample_stats):
        rdb = tmp_path / "dump.rdb"
        rdb.write_bytes(b"REDIS0009")
        stats_out = tmp_path / "stats.json"

        with patch.object(cli, "aggregate", AsyncMock(return_value=sample_stats)), \
                patch.object(cli, "deliver") as deliver_mock:
            cli.main(["--debug-only-stats", "--debug-stats-output", str(stats_out), str(rdb)])

        deliver_mock.assert_not_called()
        assert stats_out.exists()

    def test_debug_render_from_stats_file(self, tmp_path, sample_stats):
        stats_file = tmp_path / "stats.json"
        write_stats(sample_stats, str(stats_file))
        out = tmp_path / "out.svg"

        with patch.object(cli, "aggregate") as aggregate_mock:
            cli.main(["--debug-render", str(stats_file), "-o", str(out)])

        aggregate_mock.assert_not_called()
        assert b"Databases: 2" in out.read_bytes()

    def test_debug_render_with_malformed_stats(self, tmp_path):
        stats_file = tmp_path / "stats.json"
        stats_file.write_text("[]")

        assert run_cli(["--debug-render", str(stats_file), "-o", str(tmp_path / "out.svg")]) == 1

    def test_listen_mode_serves_snapshot(self, tmp_path, sample_stats):
        rdb = tmp_path / "dump.rdb"
        rdb.write_bytes(b"REDIS0009")

        with patch.object(cli, "aggregate", AsyncMock(return_value=sample_stats)), \
                patch.object(cli, "run_server") as run_server_mock:
            cli.main(["-l", "127.0.0.1:9000", str(rdb)])

        run_server_mock.assert_called_once_with(sample_stats, "127.0.0.1:9000")

    def test_bind_failure_exits(self, tmp_path, sample_stats):
        rdb = tmp_path / "dump.rdb"
        rdb.write_bytes(b"REDIS0009")

        with patch.object(cli, "aggregate", AsyncMock(return_value=sample_stats)), \
                patch.object(cli, "run_server", side_effect=OSError("address in use")):
            assert run_cli(["-l", "127.0.0.1:9000", str(rdb)]) == 1

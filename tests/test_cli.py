"""Tests for the CLI: exit codes and output modes (--quiet, --json, --verbose)."""

from __future__ import annotations

import json
import sys
from unittest.mock import patch

import pytest
from loguru import logger
from typer.testing import CliRunner

from graph_loader.cli import EXIT_FATAL, EXIT_OK, EXIT_PARTIAL, _output, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_output():
    """Reset the global _output singleton and loguru sinks around each test."""
    _output.quiet = False
    _output.json = False
    _output.verbose = 0
    yield
    logger.remove()
    logger.add(sys.stderr)


def _patch_client(client):
    """Patch GraphClient where the async helpers import it (graph_loader.graph)."""
    return patch("graph_loader.graph.GraphClient", return_value=client)


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_success_exit_code(self, csv_dir, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir), "--batch-size", "2"])

        assert result.exit_code == EXIT_OK
        assert len(fake_client.data_writes()) == 4
        assert fake_client.closed

    def test_partial_failure_exit_code(self, csv_dir, make_client):
        client = make_client(reject=lambda q: "Acme" in q)
        with _patch_client(client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir)])

        assert result.exit_code == EXIT_PARTIAL

    def test_unreachable_database_exit_code(self, csv_dir, make_client):
        client = make_client(unavailable=True)
        with _patch_client(client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir)])

        assert result.exit_code == EXIT_FATAL
        assert client.closed

    def test_missing_csv_dir_exit_code(self, tmp_path, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(tmp_path / "missing")])

        assert result.exit_code == EXIT_FATAL

    def test_fail_fast_exit_code(self, csv_dir, make_client):
        client = make_client(reject=lambda q: "Acme" in q)
        with _patch_client(client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir), "--fail-fast"])

        assert result.exit_code == EXIT_FATAL
        assert not any("-[r:" in q for q in client.writes)

    def test_merge_mode(self, csv_dir, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir), "--merge-mode"])

        assert result.exit_code == EXIT_OK
        assert all(" CREATE " not in q for q in fake_client.data_writes())

    def test_unknown_labels_strict_and_lenient(self, csv_dir, csv_writer, fake_client):
        csv_writer(
            csv_dir / "edges_OWNS.csv",
            ["source", "target", "source_label", "target_label"],
            [["1001", "x", "Person", "Gadget"]],
        )
        with _patch_client(fake_client):
            strict = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir)])
            lenient = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir), "--no-strict-labels"])

        assert strict.exit_code == EXIT_FATAL
        assert lenient.exit_code == EXIT_OK

    def test_json_summary(self, csv_dir, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["--json", "load", "social", "--csv-dir", str(csv_dir)])

        assert result.exit_code == EXIT_OK
        payload = json.loads(result.stdout)
        assert payload["ok"] is True
        assert payload["nodes"] == {"loaded": 4, "failed": 0}
        assert payload["relationships"] == {"loaded": 2, "failed": 0}
        assert [f["file"] for f in payload["files"]][-1] == "edges_WORKS_AT.csv"

    def test_stats_after_load(self, csv_dir, make_client):
        client = make_client(read_results={"MATCH (n)": [{"labels": ["Person"], "count": 3}]})
        with _patch_client(client):
            result = runner.invoke(app, ["--json", "load", "social", "--csv-dir", str(csv_dir), "--stats"])

        assert result.exit_code == EXIT_OK
        assert json.loads(result.stdout)["stats"]["nodes"] == {"Person": 3}

    def test_sample_nodes_after_load(self, csv_dir, make_client):
        client = make_client(read_results={"MATCH (n:Company)": [{"n": {"id": "c1", "name": "Acme"}}]})
        args = ["--json", "load", "social", "--csv-dir", str(csv_dir), "--stats", "--sample-label", "Company"]
        with _patch_client(client):
            result = runner.invoke(app, args)

        assert result.exit_code == EXIT_OK
        assert json.loads(result.stdout)["samples"] == {"Company": [{"id": "c1", "name": "Acme"}]}


# ---------------------------------------------------------------------------
# validate / stats
# ---------------------------------------------------------------------------


class TestValidate:
    def test_consistent_labels(self, csv_dir):
        result = runner.invoke(app, ["--json", "validate", "--csv-dir", str(csv_dir)])
        assert result.exit_code == EXIT_OK
        assert json.loads(result.stdout) == {
            "ok": True,
            "mapping": {"Company": "Company", "Person": "Person", "person": "Person"},
        }

    def test_missing_labels(self, csv_dir, csv_writer):
        header = ["source", "target", "source_label", "target_label"]
        csv_writer(csv_dir / "edges_OWNS.csv", header, [["1", "2", "A", "B"]])
        result = runner.invoke(app, ["--json", "validate", "--csv-dir", str(csv_dir)])
        assert result.exit_code == EXIT_FATAL
        assert '"missing"' in result.stdout

    def test_missing_labels_lenient_flag(self, csv_dir, csv_writer):
        header = ["source", "target", "source_label", "target_label"]
        csv_writer(csv_dir / "edges_OWNS.csv", header, [["1", "2", "Person", "Gadget"]])
        result = runner.invoke(app, ["--json", "validate", "--csv-dir", str(csv_dir), "--no-strict-labels"])
        assert result.exit_code == EXIT_OK
        assert "Gadget" not in json.loads(result.stdout)["mapping"]

    def test_missing_labels_lenient_from_settings(self, csv_dir, csv_writer, monkeypatch):
        monkeypatch.setenv("GRAPH_LOADER_LOAD__STRICT_LABELS", "false")
        header = ["source", "target", "source_label", "target_label"]
        csv_writer(csv_dir / "edges_OWNS.csv", header, [["1", "2", "Person", "Gadget"]])
        result = runner.invoke(app, ["--json", "validate", "--csv-dir", str(csv_dir)])
        assert result.exit_code == EXIT_OK
        assert json.loads(result.stdout)["ok"] is True


class TestStats:
    def test_stats_json(self, make_client):
        client = make_client(
            read_results={
                "MATCH (n)": [{"labels": ["Person"], "count": 3}],
                "MATCH ()-[r]->()": [{"type": "KNOWS", "count": 1}],
            }
        )
        with _patch_client(client):
            result = runner.invoke(app, ["--json", "stats", "social"])

        assert result.exit_code == EXIT_OK
        payload = json.loads(result.stdout)
        assert payload["total_nodes"] == 3
        assert payload["relationships"] == {"KNOWS": 1}

    def test_stats_with_sample_nodes(self, make_client):
        client = make_client(
            read_results={
                "MATCH (n)": [{"labels": ["Person"], "count": 1}],
                "MATCH (n:Person)": [{"n": {"id": "1001", "name": "Alice"}}],
            }
        )
        with _patch_client(client):
            result = runner.invoke(app, ["--json", "stats", "social", "--sample-label", "Person"])

        assert result.exit_code == EXIT_OK
        assert json.loads(result.stdout)["samples"] == {"Person": [{"id": "1001", "name": "Alice"}]}
        assert "MATCH (n:Person) RETURN n LIMIT 3" in client.reads

    def test_stats_unreachable(self, make_client):
        with _patch_client(make_client(unavailable=True)):
            result = runner.invoke(app, ["stats", "social"])
        assert result.exit_code == EXIT_FATAL


# ---------------------------------------------------------------------------
# Output modes
# ---------------------------------------------------------------------------


class TestOutputModes:
    def test_quiet_suppresses_info(self, csv_dir, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["--quiet", "load", "social", "--csv-dir", str(csv_dir)])

        assert result.exit_code == EXIT_OK
        assert result.output.strip() == ""

    def test_quiet_via_env_var(self, csv_dir, fake_client):
        with _patch_client(fake_client):
            result = runner.invoke(app, ["load", "social", "--csv-dir", str(csv_dir)], env={"GRAPH_LOADER_QUIET": "1"})

        assert result.exit_code == EXIT_OK
        assert result.output.strip() == ""

    def test_double_verbose(self, csv_dir):
        runner.invoke(app, ["-v", "-v", "validate", "--csv-dir", str(csv_dir)])
        assert _output.verbose >= 2

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "load" in result.output

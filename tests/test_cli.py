"""Tests for the command-line interface (no network access)."""

import json

import pytest
from click.testing import CliRunner

from lectern.__main__ import cli

SEED = {
    "GEN": {
        "1": [
            {"verse": 1, "text": "In the beginning God created the heaven and the earth."},
            {"verse": 2, "text": "And the earth was without form, and void;"},
        ]
    }
}


@pytest.fixture
def env(monkeypatch, db_path):
    monkeypatch.setenv("LECTERN_DB_PATH", str(db_path))
    for name in ("LECTERN_CATALOG_PATH", "ESV_API_KEY", "API_BIBLE_KEY", "LECTERN_HTTP_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def runner():
    return CliRunner()


class TestEditionsCommand:
    def test_json(self, runner, env):
        result = runner.invoke(cli, ["editions", "--json"])
        assert result.exit_code == 0, result.output
        codes = [e["code"] for e in json.loads(result.stdout)]
        assert codes[:4] == ["WEB", "KJV", "ASV", "YLT"]
        assert "ESV" in codes

    def test_table(self, runner, env):
        result = runner.invoke(cli, ["editions"])
        assert result.exit_code == 0, result.output
        assert "KJV" in result.output

    def test_bad_catalog(self, runner, env, tmp_path):
        path = tmp_path / "editions.yaml"
        path.write_text("KJV:\n  name: King James\n  tier: free\n  strategy: carrier-pigeon\n")
        env.setenv("LECTERN_CATALOG_PATH", str(path))

        result = runner.invoke(cli, ["editions"])
        assert result.exit_code == 1
        assert "Catalog error" in result.output


class TestSeedAndRead:
    def test_seed_then_read(self, runner, env, seed_file):
        path = seed_file(SEED)

        result = runner.invoke(cli, ["seed", str(path), "--edition", "KJV"])
        assert result.exit_code == 0, result.output
        assert "1 chapters" in result.output

        result = runner.invoke(cli, ["read", "GEN", "1", "--edition", "KJV", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["edition_code"] == "KJV"
        assert [v["verse"] for v in data["verses"]] == [1, 2]
        assert data["verses"][0]["paragraph_start"] is True

    def test_read_panel(self, runner, env, seed_file):
        runner.invoke(cli, ["seed", str(seed_file(SEED)), "--edition", "KJV"])
        result = runner.invoke(cli, ["read", "GEN", "1"])
        assert result.exit_code == 0, result.output
        assert "Genesis 1 (KJV)" in result.output

    def test_seed_api_edition_rejected(self, runner, env, seed_file):
        result = runner.invoke(cli, ["seed", str(seed_file(SEED)), "--edition", "ESV"])
        assert result.exit_code == 1
        assert "Seed failed" in result.output

    def test_read_unseeded(self, runner, env):
        result = runner.invoke(cli, ["read", "GEN", "1", "--edition", "WEB", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "local_not_seeded"

    def test_read_without_credential(self, runner, env):
        result = runner.invoke(cli, ["read", "GEN", "1", "--edition", "ESV", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "missing_credential"

    def test_read_unsupported(self, runner, env):
        result = runner.invoke(cli, ["read", "GEN", "1", "--edition", "XYZ", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["message"] == "Translation not supported."


class TestDiagnostics:
    def test_cache_stats(self, runner, env, seed_file):
        runner.invoke(cli, ["seed", str(seed_file(SEED)), "--edition", "KJV"])
        result = runner.invoke(cli, ["cache-stats"])
        assert result.exit_code == 0, result.output
        assert "KJV" in result.output

    def test_diagnose_masks_credentials(self, runner, env):
        env.setenv("ESV_API_KEY", "esv-very-secret-key")
        result = runner.invoke(cli, ["diagnose"])
        assert result.exit_code == 0, result.output
        assert "esv-very-secret-key" not in result.output
        assert "API_BIBLE_KEY" in result.output
        assert "not set" in result.output
        assert "no seeded text" in result.output

    def test_bad_timeout(self, runner, env):
        env.setenv("LECTERN_HTTP_TIMEOUT", "soon")
        result = runner.invoke(cli, ["editions"])
        assert result.exit_code == 1
        assert "LECTERN_HTTP_TIMEOUT" in result.output

"""Tests for the command-line runner."""

import json

import pytest
import structlog

from inventory_intel.cli import main, parse_args


DEALER = {
    "name": "NC Trailers",
    "baseUrl": "https://dealer.example.com",
    "inventoryPath": "/inventory",
    "platform": "woocommerce",
}


@pytest.fixture(autouse=True)
def reset_logging():
    """main() configures structlog against the captured stderr."""
    yield
    structlog.reset_defaults()


def _db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}"


class TestCli:
    """Argument parsing and the offline commands."""

    def test_parse_args(self):
        args = parse_args(["--tenant", "acme", "changes", "--source", "NC Trailers", "--limit", "5"])

        assert args.tenant == "acme"
        assert args.command == "changes"
        assert args.source == "NC Trailers"
        assert args.limit == 5

    def test_targets_file_then_list(self, tmp_path, capsys):
        targets = tmp_path / "targets.json"
        targets.write_text(json.dumps([DEALER]), encoding="utf-8")

        code = main([
            "--tenant", "acme",
            "--database-url", _db_url(tmp_path),
            "--create-tables",
            "--targets", str(targets),
            "list",
        ])

        assert code == 0
        listed = json.loads(capsys.readouterr().out)
        assert [t["sourceName"] for t in listed] == ["NC Trailers"]
        assert listed[0]["inventoryUrl"] == "https://dealer.example.com/inventory"

    def test_summary_of_empty_inventory(self, tmp_path, capsys):
        code = main(["--tenant", "acme", "--database-url", _db_url(tmp_path), "--create-tables", "summary"])

        assert code == 0
        assert json.loads(capsys.readouterr().out)["totalCount"] == 0

    def test_unknown_source_is_config_error(self, tmp_path):
        code = main([
            "--tenant", "acme",
            "--database-url", _db_url(tmp_path),
            "--create-tables",
            "run", "--source", "Nobody",
        ])

        assert code == 2

    def test_missing_tenant_is_config_error(self, tmp_path):
        assert main(["--tenant", "", "--database-url", _db_url(tmp_path), "summary"]) == 2

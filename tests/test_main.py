"""
Integration tests for the command-line interface
"""
import json
import sys

import pytest

from review_desk import main as cli
from review_desk.database import DatabaseManager


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["review-desk", *argv])
    cli.main()


@pytest.mark.integration
class TestCLI:

    def test_import_then_list(self, monkeypatch, temp_dir, two_row_csv, capsys):
        db_path = temp_dir / "cli.duckdb"
        csv_path = temp_dir / "reviews.csv"
        csv_path.write_bytes(two_row_csv)

        run_cli(monkeypatch, "--db", str(db_path), "import", str(csv_path),
                "--marketplace", "Website", "--no-ai")
        out = capsys.readouterr().out
        assert "Imported: 2" in out

        run_cli(monkeypatch, "--db", str(db_path), "list")
        assert "2 review(s)" in capsys.readouterr().out

    def test_set_status(self, monkeypatch, temp_dir, two_row_csv):
        db_path = temp_dir / "cli.duckdb"
        csv_path = temp_dir / "reviews.csv"
        csv_path.write_bytes(two_row_csv)
        run_cli(monkeypatch, "--db", str(db_path), "import", str(csv_path),
                "--marketplace", "Website", "--no-ai")

        with DatabaseManager(db_path) as db:
            review_id = db.list_reviews()[0].id

        run_cli(monkeypatch, "--db", str(db_path), "set-status", review_id, "resolved")

        with DatabaseManager(db_path) as db:
            assert db.get_review(review_id).status == "resolved"

    def test_domain_error_exits_nonzero(self, monkeypatch, temp_dir, capsys):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "--db", str(temp_dir / "cli.duckdb"),
                    "set-status", "missing", "resolved")
        assert exc.value.code == 1
        assert "Review not found" in capsys.readouterr().out

    def test_template(self, monkeypatch, temp_dir):
        output = temp_dir / "template.csv"
        run_cli(monkeypatch, "template", str(output))
        assert output.read_text(encoding="utf-8").startswith("Title,Content")

    def test_import_mailbox(self, monkeypatch, temp_dir, sample_messages, capsys):
        inbox = temp_dir / "inbox.json"
        inbox.write_text(json.dumps({"messages": sample_messages}), encoding="utf-8")

        run_cli(monkeypatch, "--db", str(temp_dir / "cli.duckdb"),
                "import-mailbox", str(inbox), "--no-ai")

        assert "Imported: 2" in capsys.readouterr().out

    @pytest.mark.parametrize("content", ["{not json", '{"messages": "m1"}', "42"])
    def test_import_mailbox_rejects_bad_file(self, monkeypatch, temp_dir, capsys, content):
        db_path = temp_dir / "cli.duckdb"
        inbox = temp_dir / "inbox.json"
        inbox.write_text(content, encoding="utf-8")

        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "--db", str(db_path), "import-mailbox", str(inbox), "--no-ai")

        assert exc.value.code == 1
        assert "Mailbox import complete" not in capsys.readouterr().out

    def test_import_mailbox_missing_file(self, monkeypatch, temp_dir, capsys):
        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "--db", str(temp_dir / "cli.duckdb"),
                    "import-mailbox", str(temp_dir / "nope.json"))
        assert exc.value.code == 1
        assert "File not found" in capsys.readouterr().out

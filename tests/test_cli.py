"""CLI tests."""

import json
import re

import pytest

from vocabtrace import __version__
from vocabtrace.constants import ExitCode


@pytest.fixture
def db(home):
    """Database path inside the temporary home."""
    return str(home / "vocab.db")


def invoke(runner, cli, db, *args, **kwargs):
    return runner.invoke(cli, ["--db", db, *args], **kwargs)


class TestMainCommand:
    """Tests for main CLI entry point."""

    def test_version(self, runner, cli):
        """Test --version flag."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self, runner, cli, home):
        """Test --help lists the command groups."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("scan", "review", "vocab", "noise", "wordbank", "settings", "config", "exec"):
            assert name in result.output

    def test_init(self, runner, cli, db):
        result = invoke(runner, cli, db, "init")
        assert result.exit_code == 0
        assert "Initialized" in result.output

    def test_app_option(self, runner, cli, home):
        result = runner.invoke(cli, ["--app", "reader", "init"])
        assert result.exit_code == 0
        assert (home / ".reader" / "data" / "vocabulary.db").exists()

    def test_db_from_config(self, runner, cli, home):
        configured = home / "configured.db"
        runner.invoke(cli, ["config", "set", "general.db_path", str(configured)])

        result = runner.invoke(cli, ["init"])

        assert result.exit_code == 0
        assert configured.exists()


class TestVocabCommands:
    """Tests for the vocab group."""

    def test_add_and_list(self, runner, cli, db):
        added = invoke(runner, cli, db, "vocab", "add", "Laconic", "--meaning", "terse")
        listed = invoke(runner, cli, db, "vocab", "list")

        assert added.exit_code == 0
        assert "Added laconic" in added.output
        assert listed.exit_code == 0
        assert "Laconic" in listed.output

    def test_show_missing(self, runner, cli, db):
        result = invoke(runner, cli, db, "vocab", "show", "missing")
        assert result.exit_code == ExitCode.NOT_FOUND

    def test_delete_missing(self, runner, cli, db):
        result = invoke(runner, cli, db, "vocab", "delete", "missing")
        assert result.exit_code == 0
        assert "Nothing to delete" in result.output


class TestScanCommand:
    """Tests for scan, record, rate and review."""

    def test_scan_file(self, runner, cli, db, temp_dir):
        invoke(runner, cli, db, "vocab", "add", "laconic")
        page = temp_dir / "page.txt"
        page.write_text("A laconic reply. Nothing else.", encoding="utf-8")

        result = invoke(runner, cli, db, "scan", str(page), "--url", "https://example.com/a", "--json")

        assert result.exit_code == 0
        assert '"lemma": "laconic"' in result.output

    def test_scan_stdin(self, runner, cli, db):
        result = invoke(
            runner, cli, db, "scan", "--url", "https://example.com/a", input="A laconic reply.\n"
        )
        assert result.exit_code == 0
        assert "Coverage" in result.output

    def test_scan_requires_url(self, runner, cli, db):
        result = invoke(runner, cli, db, "scan", input="text")
        assert result.exit_code != 0

    def test_record_invalid_url(self, runner, cli, db):
        result = invoke(runner, cli, db, "record", "laconic", "--url", "nowhere")
        assert result.exit_code == ExitCode.INVALID_INPUT

    def test_record(self, runner, cli, db):
        result = invoke(runner, cli, db, "record", "laconic", "--url", "https://example.com/a")
        assert result.exit_code == 0
        assert "Recorded lookup encounter" in result.output

    def test_rate_missing(self, runner, cli, db):
        result = invoke(runner, cli, db, "rate", "missing", "known")
        assert result.exit_code == ExitCode.NOT_FOUND

    def test_review_empty(self, runner, cli, db):
        result = invoke(runner, cli, db, "review")
        assert result.exit_code == 0
        assert "Nothing to review" in result.output

    def test_review_json(self, runner, cli, db):
        invoke(runner, cli, db, "vocab", "add", "laconic", "--meaning", "terse")
        result = invoke(runner, cli, db, "review", "--json", "--seed", "42")

        assert result.exit_code == 0
        assert '"meaning": "terse"' in result.output

    def test_cleanup_dry_run(self, runner, cli, db):
        result = invoke(runner, cli, db, "cleanup", "--dry-run")
        assert result.exit_code == 0
        assert "DRY RUN" in result.output

    def test_stats(self, runner, cli, db):
        result = invoke(runner, cli, db, "stats")
        assert result.exit_code == 0
        assert "Total Vocabulary" in result.output


class TestTraceCommands:
    """Tests for the traces group."""

    def test_save_list_delete(self, runner, cli, db):
        saved = invoke(
            runner, cli, db, "traces", "save", "Laconic",
            "--url", "https://example.com/a", "--sentence", "A laconic reply.",
        )
        trace_id = re.search(r"Saved trace ([0-9a-f-]{36})", saved.output).group(1)
        listed = invoke(runner, cli, db, "traces", "list", "--search", "reply")
        deleted = invoke(runner, cli, db, "traces", "delete", trace_id)
        traced = invoke(runner, cli, db, "vocab", "list", "--filter", "traced")

        assert saved.exit_code == 0
        assert "for laconic" in saved.output
        assert "(1 total)" in listed.output
        assert deleted.exit_code == 0
        assert "Deleted trace" in deleted.output
        assert "(0 total)" in traced.output

    def test_save_requires_url(self, runner, cli, db):
        result = invoke(runner, cli, db, "traces", "save", "laconic")
        assert result.exit_code != 0

    def test_delete_missing(self, runner, cli, db):
        result = invoke(runner, cli, db, "traces", "delete", "missing")
        assert result.exit_code == 0
        assert "Nothing to delete" in result.output

    def test_show_filters_by_host(self, runner, cli, db):
        invoke(runner, cli, db, "record", "laconic", "--url", "https://example.com/a")
        invoke(runner, cli, db, "record", "laconic", "--url", "https://news.org/b")
        listed = invoke(runner, cli, db, "exec", json.dumps({"type": "GET_VOCAB_LIST"}))
        vocab_id = re.search(r'"vocab_id": "([0-9a-f-]{36})"', listed.output).group(1)

        result = invoke(runner, cli, db, "vocab", "show", vocab_id, "--host", "news.org")

        assert result.exit_code == 0
        assert "(1 total)" in result.output


class TestWordbankAndNoise:
    """Tests for the wordbank, noise and settings groups."""

    def test_noise_wordbank_flow(self, runner, cli, db, temp_dir):
        created = invoke(runner, cli, db, "wordbank", "create", "Noise", "--code", "noise")
        wordbank_id = re.search(r"\(([0-9a-f-]{36})\)", created.output).group(1)
        words = temp_dir / "noise.txt"
        words.write_text("the\nof\n", encoding="utf-8")

        imported = invoke(runner, cli, db, "wordbank", "import", wordbank_id, str(words))
        configured = invoke(runner, cli, db, "settings", "set", "noiseWordbankId", wordbank_id)
        synced = invoke(runner, cli, db, "noise", "sync")
        listed = invoke(runner, cli, db, "vocab", "list", "--filter", "noise")

        assert imported.exit_code == 0
        assert "Imported 2 words" in imported.output
        assert configured.exit_code == 0
        assert "unchanged" in synced.output
        assert "(2 total)" in listed.output

    def test_enable_missing_wordbank(self, runner, cli, db):
        result = invoke(runner, cli, db, "wordbank", "enable", "missing")
        assert result.exit_code == ExitCode.NOT_FOUND

    def test_settings_set_and_show(self, runner, cli, db):
        invoke(runner, cli, db, "settings", "set", "autoTracePoolSize", "12")
        result = invoke(runner, cli, db, "settings", "show")

        assert result.exit_code == 0
        assert '"autoTracePoolSize": 12' in result.output

    def test_unknown_setting(self, runner, cli, db):
        result = invoke(runner, cli, db, "settings", "set", "colorScheme", "dark")
        assert result.exit_code == ExitCode.INVALID_INPUT


class TestConfigCommands:
    """Tests for the config group."""

    def test_config_set_and_get(self, runner, cli, home):
        set_result = runner.invoke(cli, ["config", "set", "review.count", "5"])
        get_result = runner.invoke(cli, ["config", "get", "review.count"])

        assert set_result.exit_code == 0
        assert "review.count = 5" in get_result.output

    def test_config_get_missing(self, runner, cli, home):
        result = runner.invoke(cli, ["config", "get", "nope.nothing"])
        assert result.exit_code == ExitCode.GENERAL_ERROR

    def test_config_show(self, runner, cli, home):
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert '"review"' in result.output

    def test_review_count_from_config(self, runner, cli, db):
        for word in ("laconic", "quixotic", "ephemeral"):
            invoke(runner, cli, db, "vocab", "add", word, "--meaning", f"meaning of {word}")
        runner.invoke(cli, ["config", "set", "review.count", "1"])

        result = invoke(runner, cli, db, "review", "--json", "--seed", "7")

        assert result.exit_code == 0
        assert result.output.count('"vocab_id"') == 1

    def test_review_mode_from_config(self, runner, cli, db):
        invoke(runner, cli, db, "vocab", "add", "laconic")
        runner.invoke(cli, ["config", "set", "review.mode", "sideways"])

        configured = invoke(runner, cli, db, "review")
        overridden = invoke(runner, cli, db, "review", "--mode", "auto")

        assert configured.exit_code == ExitCode.INVALID_INPUT
        assert overridden.exit_code == 0

    def test_language_from_config(self, runner, cli, db):
        runner.invoke(cli, ["config", "set", "general.language", "fr"])

        invoke(runner, cli, db, "vocab", "add", "pain")
        result = invoke(runner, cli, db, "exec", json.dumps({"type": "GET_VOCAB_LIST"}))

        assert result.exit_code == 0
        assert '"language": "fr"' in result.output


class TestExecCommand:
    """Tests for exec."""

    def test_exec_message(self, runner, cli, db):
        result = invoke(runner, cli, db, "exec", json.dumps({"type": "GET_STATISTICS"}))
        assert result.exit_code == 0
        assert '"ok": true' in result.output

    def test_exec_stdin(self, runner, cli, db):
        message = {"type": "UPSERT_VOCAB", "payload": {"lemma": "laconic"}}
        result = invoke(runner, cli, db, "exec", input=json.dumps(message))
        assert result.exit_code == 0
        assert '"lemma": "laconic"' in result.output

    def test_exec_error_envelope(self, runner, cli, db):
        result = invoke(runner, cli, db, "exec", json.dumps({"type": "LAUNCH_ROCKET"}))
        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "VALIDATION_ERROR" in result.output

    def test_exec_invalid_json(self, runner, cli, db):
        result = invoke(runner, cli, db, "exec", "{not json")
        assert result.exit_code == ExitCode.INVALID_INPUT

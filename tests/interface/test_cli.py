"""Tests for CLI commands: session lifecycle, vocab due and config show."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from unilex.interface.cli import app

runner = CliRunner()

POOL = """\
cards:
  - id: vocab_001
    term: la mesa
    definition: the table
  - id: vocab_002
    term: el perro
    definition: the dog
  - id: vocab_003
    term: el gato
    definition: the cat
"""


@pytest.fixture
def cli_env(mock_home, tmp_path):
    pool = tmp_path / "pool.yaml"
    pool.write_text(POOL, encoding="utf-8")
    data_dir = tmp_path / "data"
    return {
        "pool": pool,
        "data_dir": data_dir,
        "env": {"UNILEX_DATA_DIR": str(data_dir), "UNILEX_BACKEND": "json"},
    }


def _invoke(cli_env, args, input=None):
    return runner.invoke(app, args, input=input, env=cli_env["env"])


def _new_session(cli_env, count=2):
    result = _invoke(cli_env, ["session", "new", str(cli_env["pool"]), "--count", str(count)])
    assert result.exit_code == 0, result.output
    return result.stdout.strip().splitlines()[-1]


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "session" in result.stdout
    assert "vocab" in result.stdout
    assert "config" in result.stdout


# --- Session ---


def test_session_new_and_show(cli_env):
    session_id = _new_session(cli_env)
    assert session_id.startswith("ses_")

    result = _invoke(cli_env, ["session", "show", session_id])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["session_id"] == session_id
    assert len(data["items"]) == 2
    assert data["progress"]["current_index"] == 0


def test_session_new_insufficient_content(cli_env):
    result = _invoke(
        cli_env, ["session", "new", str(cli_env["pool"]), "--count", "2", "--mode", "review_only"]
    )
    assert result.exit_code == 1
    assert "Could not build session" in result.output


def test_session_new_missing_pool(cli_env, tmp_path):
    result = _invoke(cli_env, ["session", "new", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_session_list(cli_env):
    first = _new_session(cli_env)
    second = _new_session(cli_env, count=1)

    result = _invoke(cli_env, ["session", "list"])
    assert result.exit_code == 0
    assert first in result.stdout
    assert second in result.stdout
    assert "not_started" in result.stdout


def test_session_show_missing(cli_env):
    result = _invoke(cli_env, ["session", "show", "ses_missing"])
    assert result.exit_code == 1
    assert "not found" in result.output


def _write_corrupt_session(cli_env, session_id="ses_bad"):
    root = cli_env["data_dir"] / "sessions"
    root.mkdir(parents=True, exist_ok=True)
    (root / f"{session_id}.json").write_text("{not json", encoding="utf-8")
    return session_id


def test_corrupt_session_exits_cleanly(cli_env):
    session_id = _write_corrupt_session(cli_env)

    for command in ("show", "recap", "practice", "restart"):
        result = _invoke(cli_env, ["session", command, session_id])
        assert result.exit_code == 1, command
        assert "Storage error" in result.output
        assert isinstance(result.exception, SystemExit)


def test_unsafe_session_id_exits_cleanly(cli_env):
    result = _invoke(cli_env, ["session", "show", "../x"])
    assert result.exit_code == 1
    assert "Storage error" in result.output


def test_session_list_skips_unreadable(cli_env):
    good = _new_session(cli_env)
    bad = _write_corrupt_session(cli_env)

    result = _invoke(cli_env, ["session", "list"])

    assert result.exit_code == 0
    listed = [line.split()[0] for line in result.stdout.splitlines()]
    assert listed == [good]
    assert bad not in listed


def test_practice_completes_session(cli_env):
    session_id = _new_session(cli_env)

    # Per item: Enter to reveal, then the grade
    result = _invoke(cli_env, ["session", "practice", session_id], input="\ny\n\nn\n")

    assert result.exit_code == 0, result.output
    assert "Session complete!" in result.stdout
    assert "Accuracy: 50%" in result.stdout

    recap = _invoke(cli_env, ["session", "recap", session_id])
    assert recap.exit_code == 0
    assert "Review the missed items." in recap.stdout


def test_practice_undo_and_quit(cli_env):
    session_id = _new_session(cli_env)

    result = _invoke(
        cli_env, ["session", "practice", session_id], input="\ny\n\nu\n\nq\n"
    )
    assert result.exit_code == 0, result.output

    data = json.loads(_invoke(cli_env, ["session", "show", session_id]).stdout)
    assert data["progress"]["current_index"] == 0
    assert data["items"][0]["history"] == []


def test_practice_flag(cli_env):
    session_id = _new_session(cli_env, count=1)

    result = _invoke(cli_env, ["session", "practice", session_id], input="\nf\n\ny\n")

    assert "Flagged for priority review." in result.stdout
    data = json.loads(_invoke(cli_env, ["session", "show", session_id]).stdout)
    assert data["items"][0]["is_flagged"] is True
    assert data["recap"]["flagged_item_ids"] == [data["items"][0]["item_id"]]


def test_practice_translation_uses_rubric_score(cli_env, tmp_path):
    pool = tmp_path / "translation.yaml"
    pool.write_text(
        """\
cards:
  - id: vocab_100
    kind: translation
    term: I am hungry
    definition: tengo hambre
    rubric:
      must_include: [tengo, hambre]
      error_tags: [ser_estar]
""",
        encoding="utf-8",
    )
    result = _invoke(cli_env, ["session", "new", str(pool), "--count", "1"])
    session_id = result.stdout.strip().splitlines()[-1]

    # Answer, Enter to reveal, then confirm
    result = _invoke(cli_env, ["session", "practice", session_id], input="tengo sed\n\ny\n")

    assert result.exit_code == 0, result.output
    assert "Score: 50%" in result.stdout
    data = json.loads(_invoke(cli_env, ["session", "show", session_id]).stdout)
    attempt = data["items"][0]["history"][0]
    assert attempt["score"] == 0.5
    assert attempt["outcome"] == "correct"
    assert attempt["error_tags"] == ["ser_estar"]
    assert attempt["answer"] == "tengo sed"


def test_recap_before_completion(cli_env):
    session_id = _new_session(cli_env)
    result = _invoke(cli_env, ["session", "recap", session_id])
    assert result.exit_code == 1
    assert "no recap yet" in result.output


def test_restart_missed(cli_env):
    session_id = _new_session(cli_env)
    _invoke(cli_env, ["session", "practice", session_id], input="\ny\n\nn\n")

    result = _invoke(cli_env, ["session", "restart", session_id])
    assert result.exit_code == 0
    replay_id = result.stdout.strip()
    assert replay_id != session_id

    data = json.loads(_invoke(cli_env, ["session", "show", replay_id]).stdout)
    assert len(data["items"]) == 1


def test_restart_nothing_missed(cli_env):
    session_id = _new_session(cli_env, count=1)
    _invoke(cli_env, ["session", "practice", session_id], input="\ny\n")

    result = _invoke(cli_env, ["session", "restart", session_id, "--missed"])
    assert "No missed items" in result.stdout

    result = _invoke(cli_env, ["session", "restart", session_id, "--all"])
    assert result.stdout.strip().startswith("ses_")


# --- Vocab ---


def test_vocab_due(cli_env):
    result = _invoke(cli_env, ["vocab", "due"])
    assert result.exit_code == 0
    assert "Nothing due." in result.stdout

    session_id = _new_session(cli_env, count=1)
    # Flag, then quit: a priority review is due in two hours
    _invoke(cli_env, ["session", "practice", session_id], input="\nf\n\nq\n")

    with patch("unilex.interface.cli.utc_now") as mock_now:
        mock_now.return_value = datetime(2100, 1, 1, tzinfo=timezone.utc)
        result = _invoke(cli_env, ["vocab", "due"])

    assert "(priority)" in result.stdout


def test_vocab_due_corrupt_store(cli_env):
    cli_env["data_dir"].mkdir(parents=True)
    (cli_env["data_dir"] / "vocabulary.json").write_text("{broken", encoding="utf-8")

    result = _invoke(cli_env, ["vocab", "due"])

    assert result.exit_code == 1
    assert "Storage error" in result.output


# --- Config ---


def test_config_show(cli_env):
    result = _invoke(cli_env, ["config", "show"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["backend"] == "json"
    assert data["data_dir"].endswith("data")


def test_config_show_global_override(cli_env, tmp_path):
    result = _invoke(cli_env, ["--data-dir", str(tmp_path / "elsewhere"), "config", "show"])
    assert json.loads(result.stdout)["data_dir"].endswith("elsewhere")


def test_config_show_verbosity(cli_env):
    assert json.loads(_invoke(cli_env, ["config", "show"]).stdout)["verbose"] == 0

    result = _invoke(cli_env, ["-vv", "config", "show"])
    assert json.loads(result.stdout)["verbose"] == 2


@patch("unilex.interface.cli.resolve_config")
def test_config_show_uses_resolver(mock_resolve_config):
    mock_config = MagicMock()
    mock_config.model_dump.return_value = {"backend": "memory", "verbose": 1}
    mock_resolve_config.return_value = mock_config

    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["backend"] == "memory"

import pytest

from memos_sync import cli


@pytest.fixture(autouse=True)
def quiet_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "memos_sync.log"))


def test_missing_env_file_exits_with_2(tmp_path, capsys):
    assert cli.main(["--env-file", str(tmp_path / "missing.env"), "sync"]) == 2
    assert "env file not found" in capsys.readouterr().err


def test_configuration_error_exits_with_2(monkeypatch, capsys):
    monkeypatch.setenv("MEMOS_SYNC_MODE", "sometimes")
    assert cli.main(["sync"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_global_options_parse():
    args = cli.build_parser().parse_args(["--dir", "vault", "--limit", "5", "watch", "--interval", "3"])
    assert str(args.dir) == "vault"
    assert args.limit == 5
    assert args.interval == 3


def test_digest_without_ai_exits_with_1(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MEMOS_API_URL", "https://memos.example.com/api/v1")
    monkeypatch.setenv("MEMOS_ACCESS_TOKEN", "token")
    monkeypatch.setenv("MEMOS_SYNC_MODE", "manual")
    monkeypatch.setenv("AI_ENABLED", "false")

    assert cli.main(["--dir", str(tmp_path), "digest"]) == 1
    assert "Weekly digest needs" in capsys.readouterr().err
    assert not (tmp_path / "digests").exists()

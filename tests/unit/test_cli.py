from unittest.mock import patch

import pytest

from docvault import cli


def test_secret_set_prompts_and_stores():
    with patch.object(cli.getpass, "getpass", return_value="s3cret"), patch.object(cli, "save_secret") as save:
        assert cli.main(["secret", "set", "JWT_SECRET"]) == 0
    save.assert_called_once_with("JWT_SECRET", "s3cret")


def test_secret_set_refused_by_insecure_keystore():
    with patch.object(cli.getpass, "getpass", return_value="s3cret"), patch.object(
        cli, "save_secret", side_effect=RuntimeError("insecure backend detected")
    ):
        assert cli.main(["secret", "set", "ENCRYPTION_SECRET"]) == 1


def test_secret_delete():
    with patch.object(cli, "delete_secret") as delete:
        assert cli.main(["secret", "delete", "ENCRYPTION_KEY"]) == 0
    delete.assert_called_once_with("ENCRYPTION_KEY")


def test_unknown_secret_name_rejected():
    with pytest.raises(SystemExit):
        cli.main(["secret", "set", "AWS_KEY"])


def test_serve_applies_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DOCVAULT_DB_PATH", "unused.db")
    with patch.object(cli, "serve") as serve:
        assert cli.main(["serve", "--port", "9000", "--db", str(tmp_path / "x.db"), "--log-level", "DEBUG"]) == 0
    serve.assert_called_once_with("0.0.0.0", 9000, "debug")
    assert cli.os.environ["DOCVAULT_DB_PATH"] == str(tmp_path / "x.db")

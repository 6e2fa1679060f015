"""End-to-end tests of the command line interface."""

import io

import pytest

from bulksync import cli

from conftest import FakeBaserow


PLAYLIST = """#EXTM3U
#EXTINF:-1 group-title="Filmes",Matrix (1999)
https://cdn.example/matrix.mp4
#EXTINF:-1 group-title="Séries",Show T1|EP1
https://cdn.example/show/1.mp4
#EXTINF:-1 group-title="Séries",Show T1|EP2
https://cdn.example/show/2.mp4
"""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def env(settings_path, monkeypatch):
    """Isolated settings plus a fake Baserow behind the CLI."""
    client = FakeBaserow()
    monkeypatch.setattr(cli, "make_client", lambda settings: client)
    monkeypatch.setattr(cli, "setup_logging", lambda verbose: None)
    return client


@pytest.fixture()
def playlist_file(tmp_path):
    path = tmp_path / "playlist.m3u"
    path.write_text(PLAYLIST, encoding="utf-8")
    return str(path)


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------


class TestImportCommand:
    def test_import(self, env, playlist_file, capsys):
        assert cli.main(["import", playlist_file, "--delay-ms", "0"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "Uploaded: 3 (movies 1, series 1, tv 0)" in out
        assert len(env.rows["contents"]) == 2
        assert len(env.rows["episodes"]) == 2

    def test_dry_run_uploads_nothing(self, env, playlist_file, capsys):
        assert cli.main(["import", playlist_file, "--dry-run"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "DRY RUN" in out
        assert "Series:   1 (2 episodes)" in out
        assert env.calls == []

    def test_import_from_stdin(self, env, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(PLAYLIST))
        assert cli.main(["import", "-", "--delay-ms", "0"]) == cli.EXIT_OK
        assert len(env.rows["contents"]) == 2

    def test_import_from_url(self, env, monkeypatch):
        class _Resp:
            text = PLAYLIST
            encoding = "utf-8"

            def raise_for_status(self):
                pass

        fetched = []

        def fake_get(url, timeout):
            fetched.append(url)
            return _Resp()

        monkeypatch.setattr(cli.requests, "get", fake_get)
        assert cli.main(["import", "https://lists.example/p.m3u", "--delay-ms", "0"]) == cli.EXIT_OK
        assert fetched == ["https://lists.example/p.m3u"]

    def test_missing_file(self, env, tmp_path):
        assert cli.main(["import", str(tmp_path / "nope.m3u")]) == cli.EXIT_FAILED

    def test_item_errors_exit_nonzero(self, env, playlist_file, capsys):
        env.fail_create.add("Matrix (1999)")
        assert cli.main(["import", playlist_file, "--delay-ms", "0"]) == cli.EXIT_FAILED
        assert "[ERROR] Matrix (1999)" in capsys.readouterr().out

    def test_unbound_table_is_config_error(self, env, playlist_file, monkeypatch):
        monkeypatch.setattr(cli, "make_client", lambda settings: FakeBaserow(tables=("contents",)))
        assert cli.main(["import", playlist_file]) == cli.EXIT_CONFIG

    def test_missing_token_is_config_error(self, settings_path, playlist_file, monkeypatch):
        monkeypatch.setattr(cli, "setup_logging", lambda verbose: None)
        assert cli.main(["import", playlist_file]) == cli.EXIT_CONFIG

    def test_run_recorded_in_history(self, env, playlist_file, capsys):
        cli.main(["import", playlist_file, "--delay-ms", "0"])
        capsys.readouterr()
        assert cli.main(["history"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "import" in out
        assert playlist_file in out

    def test_no_history(self, env, playlist_file, capsys):
        cli.main(["import", playlist_file, "--delay-ms", "0", "--no-history"])
        capsys.readouterr()
        cli.main(["history"])
        assert "No runs recorded yet." in capsys.readouterr().out


# ---------------------------------------------------------------------------
# rewrite / duplicates
# ---------------------------------------------------------------------------


class TestRewriteCommand:
    def _seed(self, client):
        for i in range(10):
            host = "old.cdn.com" if i < 3 else "other.cdn.com"
            client.seed("contents", Nome=f"T{i}", Link=f"https://{host}/{i}")

    def test_rewrite(self, env, capsys):
        self._seed(env)
        code = cli.main(["rewrite", "--from", "old.cdn.com", "--to", "new.cdn.com"])
        assert code == cli.EXIT_OK
        assert "Updated: 3 of 3 matching rows (10 scanned)" in capsys.readouterr().out
        assert len(env.calls_of("update")) == 3

    def test_rewrite_dry_run(self, env, capsys):
        self._seed(env)
        code = cli.main(["rewrite", "--from", "old.cdn.com", "--to", "new.cdn.com", "--dry-run"])
        assert code == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "Would update: 3 of 10 rows" in out
        assert "-> https://new.cdn.com/0" in out
        assert env.calls_of("update") == []

    def test_rewrite_unbound_table(self, env, monkeypatch):
        monkeypatch.setattr(cli, "make_client", lambda settings: FakeBaserow(tables=("contents",)))
        code = cli.main(["rewrite", "--table", "episodes", "--from", "a", "--to", "b"])
        assert code == cli.EXIT_CONFIG


def test_duplicates_command(env, capsys):
    env.seed("contents", Nome="Matrix")
    env.seed("contents", Nome="matrix")
    env.seed("contents", Nome="Lost")
    assert cli.main(["duplicates", "--table", "contents"]) == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "\"matrix\" (2 rows): 1, 2" in out
    assert "Duplicate groups: 1" in out


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommand:
    def test_set_then_show(self, env, capsys):
        assert cli.main(["config", "set", "batch_size", "9"]) == cli.EXIT_OK
        assert cli.main(["config", "set", "api_token", "abcdefghijkl"]) == cli.EXIT_OK
        assert cli.main(["config", "set", "table_ids.contents", "123"]) == cli.EXIT_OK
        capsys.readouterr()

        assert cli.main(["config", "show"]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "batch_size = 9" in out
        assert "api_token = abcd***" in out
        assert "table_ids.contents = 123" in out
        assert "abcdefghijkl" not in out

    def test_unknown_key(self, env, capsys):
        assert cli.main(["config", "set", "colour", "blue"]) == cli.EXIT_FAILED

    def test_set_without_value(self, env):
        assert cli.main(["config", "set", "batch_size"]) == cli.EXIT_FAILED

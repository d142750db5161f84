"""Unit tests for the command-line export/import script."""

import pytest

from heartsync.core.registry import KEYS
from heartsync.frontend.cli.context import build_context

from scripts.heartsync_sync import main


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("HEARTSYNC_MEDIA", str(tmp_path / "media"))
    monkeypatch.delenv("HEARTSYNC_PASSPHRASE", raising=False)
    return tmp_path


def _seed(db_path, **values):
    ctx = build_context(db_path=db_path, watch=False)
    try:
        for key, value in values.items():
            ctx.store.set(key, value)
    finally:
        ctx.close()


def _read(db_path, key):
    ctx = build_context(db_path=db_path, watch=False)
    try:
        return ctx.store.get(key)
    finally:
        ctx.close()


def test_export_then_import_into_second_device(env, capsys):
    source = env / "a.db"
    target = env / "b.db"
    _seed(source, **{KEYS.PARTNER_1: "Alex", KEYS.GOALS: [{"id": "g1"}]})

    assert main(["--db", str(source), "--passphrase", "correct-horse", "export", "--out", str(env / "pkg")]) == 0
    assert (env / "pkg.heartsync").exists()
    assert "Saved encrypted snapshot" in capsys.readouterr().out

    code = main(["--db", str(target), "--passphrase", "correct-horse", "import", str(env / "pkg.heartsync")])
    assert code == 0
    assert "Sync complete" in capsys.readouterr().out
    assert _read(target, KEYS.GOALS) == [{"id": "g1"}]


def test_export_to_stdout(env, capsys):
    db = env / "a.db"
    _seed(db, **{KEYS.PARTNER_1: "Alex"})
    assert main(["--db", str(db), "--passphrase", "correct-horse", "export"]) == 0
    assert '"salt"' in capsys.readouterr().out


def test_export_short_passphrase_fails(env, capsys):
    assert main(["--db", str(env / "a.db"), "--passphrase", "abc", "export"]) == 1
    assert "Code too short" in capsys.readouterr().err


def test_passphrase_from_environment(env, monkeypatch, capsys):
    monkeypatch.setenv("HEARTSYNC_PASSPHRASE", "correct-horse")
    assert main(["--db", str(env / "a.db"), "export"]) == 0


def test_preview_and_wrong_passphrase(env, capsys):
    db = env / "a.db"
    _seed(db, **{KEYS.PARTNER_1: "Alex", KEYS.EVENTS: [{"id": "e1"}]})
    main(["--db", str(db), "--passphrase", "correct-horse", "export", "--out", str(env / "pkg")])
    capsys.readouterr()

    assert main(["--db", str(db), "--passphrase", "correct-horse", "preview", str(env / "pkg.heartsync")]) == 0
    out = capsys.readouterr().out
    assert "Alex" in out
    assert "events: 1" in out

    assert main(["--db", str(db), "--passphrase", "wrong-password", "import", str(env / "pkg.heartsync")]) == 1
    assert "Wrong password or corrupt data" in capsys.readouterr().out


def test_import_merge_keeps_local(env):
    source = env / "a.db"
    target = env / "b.db"
    _seed(source, **{KEYS.PARTNER_1: "Jordan", KEYS.GOALS: [{"id": "g2"}]})
    _seed(target, **{KEYS.PARTNER_1: "Alex", KEYS.GOALS: [{"id": "g1"}]})
    main(["--db", str(source), "--passphrase", "correct-horse", "export", "--out", str(env / "pkg")])

    assert main(["--db", str(target), "--passphrase", "correct-horse", "import", "--merge", str(env / "pkg.heartsync")]) == 0
    assert _read(target, KEYS.PARTNER_1) == "Alex"
    assert _read(target, KEYS.GOALS) == [{"id": "g1"}, {"id": "g2"}]


@pytest.mark.parametrize("command", ["preview", "import"])
def test_missing_package_file_fails_cleanly(env, capsys, command):
    missing = env / "nowhere.heartsync"
    code = main(["--db", str(env / "a.db"), "--passphrase", "correct-horse", command, str(missing)])
    assert code == 1
    err = capsys.readouterr().err
    assert f"{command.capitalize()} failed:" in err
    assert "nowhere.heartsync" in err


def test_export_to_unwritable_path_fails_cleanly(env, capsys):
    blocker = env / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    out = blocker / "pkg"
    assert main(["--db", str(env / "a.db"), "--passphrase", "correct-horse", "export", "--out", str(out)]) == 1
    assert "Export failed:" in capsys.readouterr().err

import json

from ring_snapshot.tokens import TokenStore, resolve_refresh_token


def test_rotation_persists_new_value(tmp_path):
    path = tmp_path / "data" / "ring-state.json"
    store = TokenStore(str(path))

    store.on_credential_rotated("new-token")

    saved = json.loads(path.read_text())
    assert saved["refreshToken"] == "new-token"
    assert saved["updatedAt"]
    assert path.read_text().endswith("\n")


def test_rotation_overwrites_previous_value(tmp_path):
    path = tmp_path / "ring-state.json"
    store = TokenStore(str(path))

    store.on_credential_rotated("first")
    store.on_credential_rotated("second")

    assert json.loads(path.read_text())["refreshToken"] == "second"
    assert [p.name for p in tmp_path.iterdir()] == ["ring-state.json"]


def test_blank_rotation_is_ignored(tmp_path):
    path = tmp_path / "ring-state.json"
    store = TokenStore(str(path))

    store.on_credential_rotated("   ")
    store.on_credential_rotated(None)

    assert not path.exists()


def test_write_failure_is_swallowed(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = TokenStore(str(blocker / "ring-state.json"))

    store.on_credential_rotated("token")  # must not raise


def test_load_round_trips_and_strips(tmp_path):
    path = tmp_path / "ring-state.json"
    path.write_text(json.dumps({"refreshToken": "  abc  ", "updatedAt": "x"}))

    assert TokenStore(str(path)).load_refresh_token() == "abc"


def test_load_handles_missing_and_invalid_files(tmp_path):
    assert TokenStore(str(tmp_path / "missing.json")).load_refresh_token() is None

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    assert TokenStore(str(bad)).load_refresh_token() is None

    empty = tmp_path / "empty.json"
    empty.write_text(json.dumps({"refreshToken": ""}))
    assert TokenStore(str(empty)).load_refresh_token() is None


def test_persisted_token_wins_over_environment(tmp_path):
    path = tmp_path / "ring-state.json"
    store = TokenStore(str(path))
    assert resolve_refresh_token(store, " env-token ") == "env-token"

    store.on_credential_rotated("disk-token")
    assert resolve_refresh_token(TokenStore(str(path)), "env-token") == "disk-token"
    assert resolve_refresh_token(TokenStore(str(tmp_path / "none.json")), "") is None

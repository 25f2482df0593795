from conftest import FakeCamera
from ring_snapshot import setup_cli
from ring_snapshot.setup_cli import choose_camera, set_env_var


def test_set_env_var_replaces_existing_line():
    contents = "PORT=3000\nRING_CAMERA_ID=old\nOTHER=1\n"
    assert set_env_var(contents, "RING_CAMERA_ID", "new") == "PORT=3000\nRING_CAMERA_ID=new\nOTHER=1\n"


def test_set_env_var_appends_with_newline():
    assert set_env_var("PORT=3000", "RING_CAMERA_ID", "42") == "PORT=3000\nRING_CAMERA_ID=42\n"
    assert set_env_var("", "RING_CAMERA_ID", "42") == "RING_CAMERA_ID=42\n"


def test_set_env_var_keeps_special_characters():
    assert set_env_var("RING_REFRESH_TOKEN=x\n", "RING_REFRESH_TOKEN", r"ab\1=+/") == "RING_REFRESH_TOKEN=ab\\1=+/\n"


def test_choose_camera_reprompts_until_valid(capsys):
    cams = [FakeCamera("1"), FakeCamera("2")]
    answers = iter(["0", "abc", "3", "2"])

    assert choose_camera(cams, prompt=lambda _q: next(answers)) is cams[1]
    assert capsys.readouterr().out.count("Invalid choice") == 3


def test_setup_requires_existing_env_file(tmp_path, capsys):
    rc = setup_cli.main(["setup", "--env-file", str(tmp_path / ".env")])
    assert rc == 1
    assert "cp .env.example .env" in capsys.readouterr().err

from __future__ import annotations

from click.testing import CliRunner

from localshare.cli import cli


def test_config_prints_example():
    result = CliRunner().invoke(cli, ["config"], obj={})
    assert result.exit_code == 0
    assert '"handshake_port": 8009' in result.output
    assert '"transfer_port": 8008' in result.output


def test_send_needs_link_description(tmp_path):
    source = tmp_path / "a.txt"
    source.write_text("hi")

    result = CliRunner().invoke(cli, ["send", str(source)], obj={})
    assert result.exit_code == 2


def test_send_refuses_missing_file(tmp_path):
    result = CliRunner().invoke(
        cli, ["send", str(tmp_path / "nope.txt"), "--group-owner"], obj={}
    )
    assert result.exit_code == 2


def test_receive_needs_link_description():
    result = CliRunner().invoke(cli, ["receive"], obj={})
    assert result.exit_code == 2


def test_receive_without_peer_exits_nonzero(tmp_path, free_port):
    result = CliRunner().invoke(
        cli,
        ["--handshake-port", str(free_port()), "--transfer-port", str(free_port()),
         "receive", "--group-owner", "--storage-root", str(tmp_path / "in")],
        obj={},
        env={"LOCALSHARE_HOST": "127.0.0.1", "LOCALSHARE_HANDSHAKE_TIMEOUT": "0.3"},
    )
    assert result.exit_code == 1
    assert "Peer device is not cooperating" in result.output


def test_send_refuses_files_sharing_a_name(tmp_path):
    for folder in ("d1", "d2"):
        (tmp_path / folder).mkdir()
        (tmp_path / folder / "a.txt").write_text(folder)

    result = CliRunner().invoke(
        cli,
        ["send", str(tmp_path / "d1" / "a.txt"), str(tmp_path / "d2" / "a.txt"),
         "--group-owner"],
        obj={},
    )
    assert result.exit_code == 2

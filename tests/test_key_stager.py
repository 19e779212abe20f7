import pytest

from sshcertauth.errors import StagerFailure
from sshcertauth.ssh import KeyStager

KEY_LINE = "ssh-rsa AAAAB3NzaC1yc2EAAAABAwAAAAIBAg== Valid until: Dec 11 2011 15:27:35 +0000"


def test_install_passes_key_on_stdin(recording_stager):
    program, args_file, stdin_file = recording_stager

    result = KeyStager(program).install(KEY_LINE, "pool001", "/tmp/keys")

    assert result.ok
    assert result.returncode == 0
    assert stdin_file.read_text() == KEY_LINE + "\n"
    assert args_file.read_text().strip() == "addkey --user pool001 --keydir /tmp/keys"


def test_nonzero_exit_without_diagnostics_fails(make_script):
    program = make_script("cat > /dev/null\nexit 3")

    with pytest.raises(StagerFailure) as excinfo:
        KeyStager(program).install(KEY_LINE, "pool001", "/tmp/keys")

    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == ""
    assert "status 3" in str(excinfo.value)


def test_nonzero_exit_captures_stderr(make_script):
    program = make_script("cat > /dev/null\necho 'no such user' >&2\nexit 1")

    with pytest.raises(StagerFailure) as excinfo:
        KeyStager(program).install(KEY_LINE, "nobody", "/tmp/keys")

    assert excinfo.value.stderr == "no such user"


def test_diagnostics_on_success_are_kept(make_script):
    program = make_script("cat > /dev/null\necho 'key replaced' >&2\nexit 0")

    result = KeyStager(program).install(KEY_LINE, "pool001", "/tmp/keys")

    assert result.ok
    assert result.stderr == "key replaced"


def test_missing_program(tmp_path):
    with pytest.raises(StagerFailure, match="not found"):
        KeyStager(str(tmp_path / "nope")).install(KEY_LINE, "pool001", "/tmp/keys")


def test_timeout(make_script):
    program = make_script("exec sleep 5")

    with pytest.raises(StagerFailure, match="timed out"):
        KeyStager(program, timeout=0.2).install(KEY_LINE, "pool001", "/tmp/keys")


def test_launcher_prefix():
    stager = KeyStager("/usr/libexec/sshcertauth/keys_keeper", launcher="sudo -n")

    assert stager.build_command("pool001", "/etc/ssh/keys") == [
        "sudo", "-n", "/usr/libexec/sshcertauth/keys_keeper",
        "addkey", "--user", "pool001", "--keydir", "/etc/ssh/keys",
    ]


def test_launcher_runs_program(recording_stager):
    program, args_file, stdin_file = recording_stager

    KeyStager(program, launcher="env LANG=C").install(KEY_LINE, "pool002", "/keys")

    assert stdin_file.read_text() == KEY_LINE + "\n"
    assert "--user pool002" in args_file.read_text()

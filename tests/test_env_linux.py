from cdp_bootstrap.env_linux import LinuxLaunchEnvironment, rewrite_exec_lines, user_applications_dir
from cdp_bootstrap.models import EntryKind

DESKTOP_FILE = """[Desktop Entry]
Name=Cursor
Exec=/opt/cursor/cursor --no-sandbox %F
Type=Application

[Desktop Action new-empty-window]
Name=New Empty Window
Exec=/opt/cursor/cursor --new-window %F
"""


def _env(tmp_path):
    user_dir = tmp_path / "user" / "applications"
    system_dir = tmp_path / "system" / "applications"
    return LinuxLaunchEnvironment("Cursor", 9000, user_dir=user_dir, system_dirs=[system_dir]), user_dir, system_dir


def test_user_applications_dir_honors_xdg(tmp_path):
    assert user_applications_dir(env={"XDG_DATA_HOME": str(tmp_path)}) == tmp_path / "applications"
    assert user_applications_dir(home=tmp_path, env={}) == tmp_path / ".local" / "share" / "applications"


def test_rewrite_exec_lines_touches_every_exec_line():
    out = rewrite_exec_lines(DESKTOP_FILE, 9000)
    assert "Exec=/opt/cursor/cursor --remote-debugging-port=9000 --no-sandbox %F" in out
    assert "Exec=/opt/cursor/cursor --remote-debugging-port=9000 --new-window %F" in out
    assert "Name=New Empty Window" in out


def test_locate_reads_user_and_system_files(tmp_path):
    env, user_dir, system_dir = _env(tmp_path)
    system_dir.mkdir(parents=True)
    (system_dir / "cursor.desktop").write_text(DESKTOP_FILE, encoding="utf-8")

    entries = env.locate()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.kind == EntryKind.DESKTOP_FILE_SYSTEM
    assert entry.target_executable == "/opt/cursor/cursor"
    assert entry.argument_string == "--no-sandbox %F"
    assert entry.has_required_flag is False


def test_user_file_is_patched_in_place_and_idempotent(tmp_path):
    env, user_dir, _ = _env(tmp_path)
    user_dir.mkdir(parents=True)
    path = user_dir / "cursor.desktop"
    path.write_text(DESKTOP_FILE, encoding="utf-8")

    entry = env.locate()[0]
    first = env.patch(entry)
    after_first = path.read_bytes()
    second = env.patch(env.locate()[0])

    assert first.success and first.modified
    assert second.success and not second.modified
    assert path.read_bytes() == after_first
    assert env.locate()[0].has_required_flag is True


def test_system_file_is_copied_not_modified(tmp_path):
    env, user_dir, system_dir = _env(tmp_path)
    system_dir.mkdir(parents=True)
    system_file = system_dir / "cursor.desktop"
    system_file.write_text(DESKTOP_FILE, encoding="utf-8")

    result = env.patch(env.locate()[0])

    assert result.modified
    assert system_file.read_text(encoding="utf-8") == DESKTOP_FILE
    copy = user_dir / "cursor.desktop"
    assert "--remote-debugging-port=9000 --no-sandbox" in copy.read_text(encoding="utf-8")

    # both entries now resolve to an already-correct user copy
    results = env.patch_all(env.locate())
    assert [r.modified for r in results] == [False, False]
    assert env.pick_primary(env.locate()).kind == EntryKind.DESKTOP_FILE_USER


def test_stale_port_is_replaced(tmp_path):
    env, user_dir, _ = _env(tmp_path)
    user_dir.mkdir(parents=True)
    path = user_dir / "cursor.desktop"
    path.write_text("[Desktop Entry]\nExec=/usr/bin/cursor --remote-debugging-port=9100 %U\n", encoding="utf-8")

    assert env.patch(env.locate()[0]).modified
    assert path.read_text(encoding="utf-8") == "[Desktop Entry]\nExec=/usr/bin/cursor --remote-debugging-port=9000 %U\n"


def test_missing_user_dir_write_failure_is_reported(tmp_path):
    env, user_dir, system_dir = _env(tmp_path)
    system_dir.mkdir(parents=True)
    (system_dir / "cursor.desktop").write_text(DESKTOP_FILE, encoding="utf-8")
    # a regular file where the user applications dir should be
    user_dir.parent.mkdir(parents=True)
    user_dir.write_text("", encoding="utf-8")

    result = env.patch(env.locate()[0])
    assert result.success is False


def test_relaunch_script_tries_each_method(tmp_path):
    env, user_dir, _ = _env(tmp_path)
    user_dir.mkdir(parents=True)
    (user_dir / "cursor.desktop").write_text(rewrite_exec_lines(DESKTOP_FILE, 9000), encoding="utf-8")
    entry = env.locate()[0]

    script = env.relaunch_script(entry, ["/home/me/my project"], fallback_executable="/opt/cursor/cursor")
    assert script.startswith("#!/bin/bash\nsleep 2\n")
    assert "gio launch" in script
    assert "/opt/cursor/cursor --remote-debugging-port=9000 --no-sandbox '/home/me/my project'" in script
    assert "gtk-launch cursor" in script
    assert '"$bin" --remote-debugging-port=9000' in script
    assert "%F" not in script

import os

from cdp_bootstrap.env_macos import MacLaunchEnvironment
from cdp_bootstrap.models import EntryKind


def _bundle(tmp_path, with_binary=True):
    apps = tmp_path / "Applications"
    macos_dir = apps / "Cursor.app" / "Contents" / "MacOS"
    macos_dir.mkdir(parents=True)
    if with_binary:
        (macos_dir / "Cursor").write_text("", encoding="utf-8")
    return MacLaunchEnvironment("Cursor", 9000, home=tmp_path / "home", applications_dir=apps)


def test_locate_reports_bundle_without_flag(tmp_path):
    env = _bundle(tmp_path)
    entries = env.locate()
    assert [e.kind for e in entries] == [EntryKind.APP_BUNDLE]
    assert entries[0].has_required_flag is False
    assert entries[0].target_executable.endswith("Cursor.app/Contents/MacOS/Cursor")


def test_patch_creates_executable_wrapper_once(tmp_path):
    env = _bundle(tmp_path)
    first = env.patch(env.locate()[0])
    wrapper = env.wrapper_path
    content = wrapper.read_bytes()

    assert first.success and first.modified
    assert wrapper == tmp_path / "home" / ".local" / "bin" / "cursor-cdp"
    assert os.access(wrapper, os.X_OK)
    text = content.decode("utf-8")
    assert text.startswith("#!/bin/bash\n")
    assert '--remote-debugging-port=9000 "$@"' in text
    assert "Contents/MacOS/Cursor" in text

    results = env.patch_all(env.locate())
    assert [r.modified for r in results] == [False, False]
    assert wrapper.read_bytes() == content


def test_wrapper_entry_is_located_with_flag(tmp_path):
    env = _bundle(tmp_path)
    env.patch(env.locate()[0])
    entries = env.locate()
    assert entries[0].kind == EntryKind.WRAPPER_SCRIPT
    assert entries[0].has_required_flag is True
    assert env.pick_primary(entries).kind == EntryKind.WRAPPER_SCRIPT


def test_wrapper_falls_back_to_open_a(tmp_path):
    env = _bundle(tmp_path, with_binary=False)
    env.patch(env.locate()[0])
    text = env.wrapper_path.read_text(encoding="utf-8")
    assert 'open -a "' in text
    assert '--args --remote-debugging-port=9000 "$@"' in text


def test_stale_wrapper_is_rewritten(tmp_path):
    env = _bundle(tmp_path)
    env.wrapper_path.parent.mkdir(parents=True)
    env.wrapper_path.write_text('#!/bin/bash\n"/x/Cursor" --remote-debugging-port=9100 "$@"\n', encoding="utf-8")
    entry = env.locate()[0]
    assert entry.has_required_flag is False

    assert env.patch(entry).modified
    assert "--remote-debugging-port=9000" in env.wrapper_path.read_text(encoding="utf-8")


def test_relaunch_script_uses_wrapper(tmp_path):
    env = _bundle(tmp_path)
    env.patch(env.locate()[0])
    wrapper_entry = env.locate()[0]
    script = env.relaunch_script(wrapper_entry, ["/Users/me/proj"])
    assert script == f"#!/bin/bash\nsleep 2\n{env.wrapper_path} /Users/me/proj\n"

    bundle_entry = env.locate()[1]
    script = env.relaunch_script(bundle_entry, [])
    assert "open -a" in script and "--args --remote-debugging-port=9000" in script

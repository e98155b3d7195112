"""Tests for the sandboxed operation server."""

import os

import pytest

from gitflash.constants import EMPTY_DIRECTORY_MARKER, NO_FILES_MARKER, SKIPPED_FILE_MARKER
from gitflash.models import ErrorKind, OperationKind, OperationRequest
from gitflash.tools.server import OperationServer


def test_server_requires_existing_root(temp_dir):
    """Test that the server refuses a missing working directory."""
    with pytest.raises(ValueError):
        OperationServer(temp_dir / "missing")


def test_list_files(server):
    """Test listing the root."""
    result = server.list_files(".")

    assert result.ok
    assert result.payload.split("\n") == ["README.md", "src", "tests"]


def test_list_files_empty_directory(server, test_project):
    """Test the empty directory marker."""
    (test_project / "empty").mkdir()

    result = server.list_files("empty")

    assert result.ok
    assert result.payload == EMPTY_DIRECTORY_MARKER


def test_list_files_not_a_directory(server):
    """Test listing a file."""
    result = server.list_files("README.md")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_A_DIRECTORY


def test_read_file(server):
    """Test reading a file."""
    result = server.read_file("src/main.py")

    assert result.ok
    assert "def hello()" in result.payload


def test_read_nonexistent_file(server):
    """Test reading a file that does not exist."""
    result = server.read_file("nonexistent.py")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_FOUND
    assert result.payload is None


def test_read_directory_as_file(server):
    """Test reading a directory."""
    result = server.read_file("src")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_A_FILE


def test_read_file_too_large(test_project):
    """Test the read size limit."""
    server = OperationServer(test_project, max_read_mb=1)
    (test_project / "big.txt").write_bytes(b"x" * (1024 * 1024 + 1))

    result = server.read_file("big.txt")

    assert not result.ok
    assert result.error_kind == ErrorKind.UNKNOWN
    assert "too large" in result.message.lower()


def test_read_binary_file(server, test_project):
    """Test that non-UTF-8 content is reported rather than mangled."""
    (test_project / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")

    result = server.read_file("blob.bin")

    assert not result.ok
    assert "utf-8" in result.message.lower()


def test_write_then_read_round_trip(server):
    """Test that a write is visible to a following read."""
    content = "line one\nline two\n"

    write = server.write_file("notes.txt", content)
    read = server.read_file("notes.txt")

    assert write.ok
    assert write.payload == "Successfully wrote to 'notes.txt'."
    assert read.payload == content


def test_write_creates_directories(server, test_project):
    """Test that write creates parent directories."""
    result = server.write_file("deep/nested/file.txt", "hi")

    assert result.ok
    assert (test_project / "deep" / "nested" / "file.txt").read_text() == "hi"


def test_write_overwrites_and_leaves_no_temp_file(server, test_project):
    """Test overwriting an existing file."""
    server.write_file("README.md", "new\n")

    assert (test_project / "README.md").read_text() == "new\n"
    assert not [p for p in os.listdir(test_project) if p.endswith(".tmp")]


def test_write_to_directory_fails(server):
    """Test writing over a directory."""
    result = server.write_file("src", "x")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_A_FILE


def test_write_too_large(test_project):
    """Test the write size limit."""
    server = OperationServer(test_project, max_write_mb=1)

    result = server.write_file("big.txt", "x" * (1024 * 1024 + 1))

    assert not result.ok
    assert not (test_project / "big.txt").exists()


def test_append_file(server, test_project):
    """Test appending to an existing and a new file."""
    first = server.append_file("README.md", "more\n")
    second = server.append_file("log.txt", "entry\n")

    assert first.ok and second.ok
    assert (test_project / "README.md").read_text() == "# Test Project\nmore\n"
    assert (test_project / "log.txt").read_text() == "entry\n"


def test_move_file(server, test_project):
    """Test moving a file into another directory."""
    result = server.move_file("README.md", "src/README.md")

    assert result.ok
    assert result.payload == "Successfully moved 'README.md' to 'src/README.md'."
    assert not (test_project / "README.md").exists()
    assert (test_project / "src" / "README.md").exists()


def test_move_refuses_existing_destination(server, test_project):
    """Test that move never overwrites."""
    result = server.move_file("src/main.py", "src/utils.py")

    assert not result.ok
    assert result.error_kind == ErrorKind.ALREADY_EXISTS
    assert "return a + b" in (test_project / "src" / "utils.py").read_text()


def test_move_missing_source(server):
    """Test moving a file that does not exist."""
    result = server.move_file("nope.txt", "other.txt")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_FOUND


def test_move_cannot_smuggle_files_out(server, test_project, temp_dir):
    """Test that either end of a move must be inside the root."""
    outside = temp_dir / "outside.txt"
    outside.write_text("secret")

    out = server.move_file("README.md", "../stolen.md")
    into = server.move_file(str(outside), "inside.txt")

    assert out.error_kind == ErrorKind.ACCESS_DENIED
    assert into.error_kind == ErrorKind.ACCESS_DENIED
    assert (test_project / "README.md").exists()
    assert outside.exists()


def test_delete_file(server, test_project):
    """Test deleting a file."""
    result = server.delete_file("src/utils.py")

    assert result.ok
    assert not (test_project / "src" / "utils.py").exists()


def test_delete_directory_with_delete_file(server):
    """Test that delete_file refuses directories."""
    result = server.delete_file("src")

    assert not result.ok
    assert result.error_kind == ErrorKind.NOT_A_FILE


def test_create_directory_is_idempotent(server, test_project):
    """Test creating a directory twice."""
    first = server.create_directory("a/b/c")
    second = server.create_directory("a/b/c")

    assert first.ok and second.ok
    assert (test_project / "a" / "b" / "c").is_dir()


def test_create_directory_over_file(server):
    """Test creating a directory where a file exists."""
    result = server.create_directory("README.md")

    assert not result.ok
    assert result.error_kind == ErrorKind.ALREADY_EXISTS


def test_delete_directory_then_list(server, test_project):
    """Test that a deleted directory is gone, contents included."""
    result = server.delete_directory("src")
    listing = server.list_files("src")

    assert result.ok
    assert result.payload == "Successfully deleted directory 'src' and all its contents."
    assert not (test_project / "src").exists()
    assert listing.error_kind == ErrorKind.NOT_FOUND


def test_delete_directory_keeps_symlink_targets(server, test_project, temp_dir):
    """Test that symlinks inside a deleted directory are not followed."""
    outside = temp_dir / "keep"
    outside.mkdir()
    (outside / "precious.txt").write_text("keep me")
    os.symlink(outside, test_project / "src" / "link")

    result = server.delete_directory("src")

    assert result.ok
    assert (outside / "precious.txt").exists()


def test_delete_root_denied(server, test_project):
    """Test that the working directory itself cannot be deleted."""
    result = server.delete_directory(".")

    assert not result.ok
    assert result.error_kind == ErrorKind.ACCESS_DENIED
    assert test_project.exists()


def test_delete_directory_link_keeps_target(server, test_project):
    """Test that deleting a link to a directory removes only the link."""
    os.symlink("src", test_project / "srclink")

    result = server.delete_directory("srclink")

    assert result.ok
    assert not os.path.lexists(test_project / "srclink")
    assert (test_project / "src" / "main.py").exists()


def test_delete_directory_on_file_link(server, test_project):
    """Test that a link to a file is not a directory."""
    os.symlink("README.md", test_project / "readme_link")

    result = server.delete_directory("readme_link")

    assert result.error_kind == ErrorKind.NOT_A_DIRECTORY
    assert (test_project / "readme_link").is_symlink()


def test_delete_file_link_keeps_target(server, test_project):
    """Test that deleting a link to a file removes only the link."""
    os.symlink("README.md", test_project / "readme_link")

    result = server.delete_file("readme_link")

    assert result.ok
    assert not os.path.lexists(test_project / "readme_link")
    assert (test_project / "README.md").read_text() == "# Test Project\n"


def test_delete_file_self_looping_link(server, test_project):
    """Test that a link pointing at itself can still be deleted."""
    os.symlink("selfloop", test_project / "selfloop")

    result = server.delete_file("selfloop")

    assert result.ok
    assert not os.path.lexists(test_project / "selfloop")


def test_move_file_moves_link_not_target(server, test_project):
    """Test that moving a link relocates the link and leaves its target."""
    os.symlink("README.md", test_project / "readme_link")

    result = server.move_file("readme_link", "src/readme_link")

    assert result.ok
    assert (test_project / "src" / "readme_link").is_symlink()
    assert not os.path.lexists(test_project / "readme_link")
    assert (test_project / "README.md").read_text() == "# Test Project\n"


def test_list_directory_tree(server):
    """Test the indented tree format."""
    result = server.list_directory_tree(".")

    assert result.ok
    assert result.payload == "\n".join([
        "proj/",
        "    README.md",
        "    src/",
        "        main.py",
        "        utils.py",
        "    tests/",
        "        test_main.py",
    ])


def test_list_directory_tree_symlink_cycle(server, test_project):
    """Test that a symlink cycle stops the walk with an error."""
    os.symlink(test_project / "src", test_project / "src" / "loop")

    result = server.list_directory_tree(".")

    assert not result.ok
    assert result.error_kind == ErrorKind.UNKNOWN
    assert "cycle" in result.message.lower()


def test_list_directory_tree_does_not_follow_outside_links(server, test_project, temp_dir):
    """Test that links leaving the root are listed but not descended."""
    outside = temp_dir / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("secret")
    os.symlink(outside, test_project / "external")

    result = server.list_directory_tree(".")

    assert result.ok
    assert "    external" in result.payload.split("\n")
    assert "secret.txt" not in result.payload


def test_list_directory_tree_lists_self_looping_link(server, test_project):
    """Test that a link pointing at itself does not fail the whole listing."""
    os.symlink("selfloop", test_project / "selfloop")

    result = server.list_directory_tree(".")

    assert result.ok
    assert "    selfloop" in result.payload.split("\n")
    assert "        main.py" in result.payload.split("\n")


def test_read_directory_files(server):
    """Test reading every regular file in one directory."""
    result = server.read_directory_files("src")

    assert result.ok
    assert sorted(result.payload) == ["main.py", "utils.py"]
    assert "def add" in result.payload["utils.py"]


def test_read_directory_files_without_files(server, test_project):
    """Test the marker for a directory with no regular files."""
    (test_project / "only_dirs" / "child").mkdir(parents=True)

    result = server.read_directory_files("only_dirs")

    assert result.ok
    assert result.payload == {"info": NO_FILES_MARKER}


def test_read_directory_files_skips_outside_links(server, test_project, temp_dir):
    """Test that links leaving the root are marked as not read."""
    secret = temp_dir / "secret.txt"
    secret.write_text("secret")
    os.symlink(secret, test_project / "src" / "leak.txt")

    result = server.read_directory_files("src")

    assert result.ok
    assert result.payload["leak.txt"] == SKIPPED_FILE_MARKER
    assert "def hello" in result.payload["main.py"]


def test_read_directory_files_marks_large_files(test_project):
    """Test that files above the read limit are marked, not read."""
    (test_project / "src" / "big.bin").write_bytes(b"x" * (1024 * 1024 + 1))
    server = OperationServer(test_project, max_read_mb=1)

    result = server.read_directory_files("src")

    assert result.ok
    assert result.payload["big.bin"] == SKIPPED_FILE_MARKER
    assert sorted(result.payload) == ["big.bin", "main.py", "utils.py"]


def test_read_directory_files_with_self_looping_link(server, test_project):
    """Test that a link pointing at itself is marked instead of failing the read."""
    os.symlink("selfloop", test_project / "selfloop")

    result = server.read_directory_files(".")

    assert result.ok
    assert result.payload["selfloop"] == SKIPPED_FILE_MARKER
    assert result.payload["README.md"] == "# Test Project\n"


def test_parent_traversal_denied(server):
    """Test that '../etc/passwd' is refused before any IO."""
    result = server.read_file("../etc/passwd")

    assert not result.ok
    assert result.error_kind == ErrorKind.ACCESS_DENIED


def _tree_snapshot(base):
    """Every path under ``base`` with the bytes of each file."""
    return sorted(
        (str(p.relative_to(base)), p.read_bytes() if p.is_file() else None)
        for p in base.rglob("*")
    )


@pytest.mark.parametrize("absolute", [False, True], ids=["dotdot", "absolute"])
@pytest.mark.parametrize("operation, arguments", [
    ("list_files", {"path": "{outside}"}),
    ("write_file", {"path": "{outside}/victim.txt", "content": "pwned"}),
    ("append_file", {"path": "{outside}/victim.txt", "content": "pwned"}),
    ("delete_file", {"path": "{outside}/victim.txt"}),
    ("create_directory", {"path": "{outside}/planted"}),
    ("delete_directory", {"path": "{outside}"}),
    ("list_directory_tree", {"path": "{outside}"}),
    ("read_directory_files", {"path": "{outside}"}),
    ("move_file", {"source": "{outside}/victim.txt", "destination": "stolen.txt"}),
])
def test_escaping_paths_are_denied(server, temp_dir, operation, arguments, absolute):
    """Test that no operation reaches outside the root, by '..' or absolute path."""
    outside = temp_dir / "outside"
    outside.mkdir()
    (outside / "victim.txt").write_text("original")
    prefix = str(outside) if absolute else "../outside"
    before = _tree_snapshot(temp_dir)

    result = getattr(server, operation)(
        **{name: value.format(outside=prefix) for name, value in arguments.items()}
    )

    assert not result.ok
    assert result.error_kind == ErrorKind.ACCESS_DENIED
    assert _tree_snapshot(temp_dir) == before


def test_get_working_directory(server, test_project):
    """Test that the working directory is reported as the canonical root."""
    result = server.get_working_directory()

    assert result.ok
    assert result.payload == str(test_project)


def test_zero_timeout_reports_timeout(test_project):
    """Test that an expired deadline is a Timeout result."""
    server = OperationServer(test_project, timeout=0)

    result = server.read_file("src/main.py")

    assert not result.ok
    assert result.error_kind == ErrorKind.TIMEOUT


def test_execute_dispatches(server):
    """Test executing a request by kind."""
    request = OperationRequest(name=OperationKind.READ_FILE, arguments={"path": "README.md"})

    result = server.execute(request)

    assert result.ok
    assert result.payload == "# Test Project\n"


def test_execute_accepts_matching_working_directory(server, test_project):
    """Test that the injected working directory is checked and dropped."""
    request = OperationRequest(
        name=OperationKind.LIST_FILES,
        arguments={"path": "src", "working_directory": str(test_project)},
    )

    result = server.execute(request)

    assert result.ok
    assert "main.py" in result.payload


def test_execute_rejects_other_working_directory(server, temp_dir):
    """Test that a different working directory is refused."""
    request = OperationRequest(
        name=OperationKind.LIST_FILES,
        arguments={"working_directory": str(temp_dir)},
    )

    result = server.execute(request)

    assert not result.ok
    assert result.error_kind == ErrorKind.ACCESS_DENIED


def test_execute_rejects_bad_arguments(server):
    """Test that arguments are validated before dispatch."""
    request = OperationRequest(name=OperationKind.READ_FILE, arguments={"file": "README.md"})

    result = server.execute(request)

    assert not result.ok
    assert result.error_kind == ErrorKind.INVALID_REQUEST


def test_scenario_write_list_read(server):
    """Test the write, list, read sequence end to end."""
    assert server.write_file("notes.txt", "remember the milk").ok

    listing = server.list_files(".")
    content = server.read_file("notes.txt")

    assert "notes.txt" in listing.payload.split("\n")
    assert content.payload == "remember the milk"

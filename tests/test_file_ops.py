"""Tests for root-confined file operations."""

import pytest

from taskcrew.tools.file_ops import FileOperationError, FileOps


class TestReadFile:

    def test_numbered_lines(self, tmp_path):
        (tmp_path / "a.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
        out = FileOps(str(tmp_path)).read_file("a.txt")
        assert out.splitlines()[0] == "-- a.txt (3 lines) --"
        assert "   2 | two" in out

    def test_line_range(self, tmp_path):
        (tmp_path / "a.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
        out = FileOps(str(tmp_path)).read_file("a.txt", start_line=2, end_line=2)
        assert "two" in out
        assert "one" not in out
        assert "three" not in out

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileOperationError, match="File not found"):
            FileOps(str(tmp_path)).read_file("nope.txt")

    def test_directory_is_not_a_file(self, tmp_path):
        (tmp_path / "src").mkdir()
        with pytest.raises(FileOperationError, match="Not a file"):
            FileOps(str(tmp_path)).read_file("src")

    def test_binary_file(self, tmp_path):
        (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")
        with pytest.raises(FileOperationError, match="binary"):
            FileOps(str(tmp_path)).read_file("blob.bin")


class TestWriteFile:

    def test_creates_parents(self, tmp_path):
        ops = FileOps(str(tmp_path))
        out = ops.write_file("src/routes/health.ts", "export {};\n")
        assert out == "Wrote to src/routes/health.ts (1 lines)"
        assert (tmp_path / "src" / "routes" / "health.ts").read_text() == "export {};\n"

    def test_overwrite_is_reported(self, tmp_path):
        ops = FileOps(str(tmp_path))
        ops.write_file("a.txt", "x")
        assert ops.write_file("a.txt", "y\nz").startswith("Overwrote a.txt")
        assert (tmp_path / "a.txt").read_text() == "y\nz"

    @pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", "src/../../x"])
    def test_paths_outside_root_are_refused(self, tmp_path, path):
        root = tmp_path / "root"
        root.mkdir()
        with pytest.raises(FileOperationError, match="outside project root"):
            FileOps(str(root)).write_file(path, "x")


class TestListDirectory:

    def test_tree_skips_noise(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.ts").write_text("", encoding="utf-8")
        (tmp_path / "node_modules").mkdir()
        (tmp_path / "node_modules" / "dep.js").write_text("", encoding="utf-8")
        (tmp_path / ".hidden").write_text("", encoding="utf-8")
        (tmp_path / "README.md").write_text("", encoding="utf-8")

        out = FileOps(str(tmp_path)).list_directory()
        assert out.splitlines()[0] == "./ (2 files, 1 dirs)"
        assert "src/" in out
        assert "app.ts" in out
        assert "node_modules" not in out
        assert ".hidden" not in out

    def test_depth_limit_still_counts(self, tmp_path):
        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        (deep / "c.txt").write_text("", encoding="utf-8")
        out = FileOps(str(tmp_path)).list_directory(max_depth=1)
        assert "c.txt" not in out
        assert out.splitlines()[0] == "./ (1 files, 2 dirs)"

    def test_not_a_directory(self, tmp_path):
        (tmp_path / "a.txt").write_text("", encoding="utf-8")
        with pytest.raises(FileOperationError, match="Not a directory"):
            FileOps(str(tmp_path)).list_directory("a.txt")

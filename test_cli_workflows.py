from __future__ import annotations

import os
import stat
import subprocess
import sys
import tempfile
import time
import unittest
import zipfile
from pathlib import Path
from typing import Dict, Tuple


def _build_fixture_tree(root: Path, *, with_link: bool = True) -> Dict[str, str]:
    """Populate ``root``; return relative path -> kind for what was created."""
    made: Dict[str, str] = {}
    notes = root / "docs" / "notes"
    notes.mkdir(parents=True)
    (root / "docs" / "vacant").mkdir()
    made.update({"docs": "dir", "docs/notes": "dir", "docs/vacant": "dir"})

    readme = root / "docs" / "readme.txt"
    readme.write_bytes(b"hello world\n" * 20)
    os.chmod(readme, 0o644)
    blob = notes / "binary.bin"
    blob.write_bytes(os.urandom(2048))
    os.chmod(blob, 0o600)
    (notes / "empty.txt").write_bytes(b"")
    made.update({"docs/readme.txt": "file", "docs/notes/binary.bin": "file", "docs/notes/empty.txt": "file"})

    os.chmod(notes, 0o750)
    yesterday = int(time.time()) - 86400
    os.utime(notes, (yesterday, yesterday))

    if with_link and hasattr(os, "symlink"):
        try:
            os.symlink("notes", root / "docs" / "ln_notes")
        except (OSError, NotImplementedError):
            return made
        made["docs/ln_notes"] = "symlink"
    return made


def _snapshot(root: Path) -> Dict[str, Tuple[str, object, int]]:
    """Map each path under ``root`` to (kind, content or link text, permission bits)."""
    out: Dict[str, Tuple[str, object, int]] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            p = Path(dirpath) / name
            rel = p.relative_to(root).as_posix()
            st = os.lstat(p)
            if stat.S_ISLNK(st.st_mode):
                out[rel] = ("symlink", os.readlink(p), 0)
            elif stat.S_ISDIR(st.st_mode):
                out[rel] = ("dir", None, 0)
            else:
                out[rel] = ("file", p.read_bytes(), stat.S_IMODE(st.st_mode))
    return out


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "arcstream.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_plain_roundtrip(self):
        tmp_src = tempfile.TemporaryDirectory()
        tmp_workspace = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_src.cleanup)
        self.addCleanup(tmp_workspace.cleanup)

        src_root = Path(tmp_src.name)
        workspace = Path(tmp_workspace.name)
        files = _build_fixture_tree(src_root)

        archive = workspace / "archive.zip"
        pack_proc = self.run_cli(["pack", str(archive), str(src_root)])
        self.assertIn("Done:", pack_proc.stdout)

        list_proc = self.run_cli(["list", str(archive)])
        self.assertIn(f"{src_root.name}/docs/readme.txt", list_proc.stdout)
        if "docs/ln_notes" in files:
            self.assertIn(f"symlink\t-> notes\t{src_root.name}/docs/ln_notes", list_proc.stdout)

        extract_dir = workspace / "extract"
        extract_dir.mkdir()
        self.run_cli(["unpack", str(archive), "--outdir", str(extract_dir)])
        self.assertEqual(_snapshot(extract_dir / src_root.name), _snapshot(src_root))
        self.assertTrue((extract_dir / src_root.name / "docs" / "vacant").is_dir())
        notes = extract_dir / src_root.name / "docs" / "notes"
        # zip timestamps have two-second resolution
        self.assertAlmostEqual(os.stat(notes).st_mtime, os.stat(src_root / "docs" / "notes").st_mtime, delta=2)

    def test_rename_exclude_and_follow(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            files = _build_fixture_tree(src)
            archive = root / "out.zip"
            self.run_cli([
                "pack", str(archive), f"{src}=renamed/",
                "--exclude", str(src / "docs" / "notes"),
                "--follow-symlinks",
                "--quiet",
            ])
            with zipfile.ZipFile(archive) as zf:
                names = zf.namelist()
            self.assertIn("renamed/src/docs/readme.txt", names)
            self.assertFalse(any(n.startswith("renamed/src/docs/notes") for n in names), names)
            if "docs/ln_notes" in files:
                # followed, the link becomes a directory holding the target's files
                self.assertIn("renamed/src/docs/ln_notes/binary.bin", names)

    def test_conflict_policies(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            file_path = root / "file.txt"
            file_path.write_text("alpha")
            archive = root / "arc.zip"
            # Store the file directly (no parent directory wrapper)
            self.run_cli(["pack", str(archive), str(file_path)])

            out_skip = root / "ex_skip"
            out_skip.mkdir()
            (out_skip / "file.txt").write_text("beta")
            skip_proc = self.run_cli(["unpack", str(archive), "--outdir", str(out_skip), "--exists", "skip"])
            self.assertIn("skipped=1", skip_proc.stdout)
            self.assertEqual((out_skip / "file.txt").read_text(), "beta")

            out_fail = root / "ex_fail"
            out_fail.mkdir()
            (out_fail / "file.txt").write_text("beta")
            fail_proc = self.run_cli(["unpack", str(archive), "--outdir", str(out_fail)], expect=2)
            self.assertIn("Error:", fail_proc.stderr)
            self.assertEqual((out_fail / "file.txt").read_text(), "beta")

            out_overwrite = root / "ex_overwrite"
            out_overwrite.mkdir()
            (out_overwrite / "file.txt").write_text("beta")
            self.run_cli(["unpack", str(archive), "--outdir", str(out_overwrite), "--exists", "overwrite"])
            self.assertEqual((out_overwrite / "file.txt").read_text(), "alpha")

    def test_selected_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "tree"
            src.mkdir()
            _build_fixture_tree(src, with_link=False)
            archive = root / "tree.zip"
            self.run_cli(["pack", str(archive), str(src)])
            out = root / "out"
            out.mkdir()
            self.run_cli(["unpack", str(archive), "tree/docs/notes", "--outdir", str(out)])
            self.assertTrue((out / "tree" / "docs" / "notes" / "binary.bin").exists())
            self.assertFalse((out / "tree" / "docs" / "readme.txt").exists())

    def test_errors_exit_nonzero(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            bogus = root / "bogus.zip"
            bogus.write_bytes(b"not a zip at all")
            proc = self.run_cli(["list", str(bogus)], expect=2)
            self.assertIn("Error:", proc.stderr)
            proc = self.run_cli(["pack", str(root / "x.zip"), str(root / "missing")], expect=2)
            self.assertIn("Error:", proc.stderr)
            self.assertFalse((root / "x.zip").exists())

    def test_failed_pack_leaves_no_archive(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            good = root / "good.txt"
            good.write_text("fine")
            archive = root / "partial.zip"
            # the first root is written before the second one fails
            proc = self.run_cli(["pack", str(archive), str(good), str(root / "missing")], expect=2)
            self.assertIn("adding: good.txt", proc.stdout)
            self.assertFalse(archive.exists())


if __name__ == "__main__":
    unittest.main()

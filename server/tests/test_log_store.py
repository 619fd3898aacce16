from pathlib import Path
import asyncio
import os
import sys
import tempfile
import time
import unittest
from unittest.mock import patch

SERVER_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(SERVER_DIR))

import log_store
from log_store import DirEntry, SearchResult


def _touch(path: Path, content: str, mtime: float) -> None:
    path.write_text(content, encoding="utf-8")
    os.utime(path, (mtime, mtime))


class LogDirTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        now = time.time()
        _touch(self.root / "old.log", "started\nhello \x1b[31mworld\x1b[0m\n", now - 100)
        _touch(self.root / "new.log", "nothing here\n\x1b]bad\nworld peace\r\n", now)
        (self.root / "alpha").mkdir()
        (self.root / "beta").mkdir()

    def tearDown(self):
        self._tmp.cleanup()


class ResolvePathTests(LogDirTestCase):
    def test_root(self):
        self.assertEqual(log_store.resolve_path(self.root, ""), self.root.resolve())
        self.assertEqual(log_store.resolve_path(self.root, "/"), self.root.resolve())

    def test_nested(self):
        self.assertEqual(
            log_store.resolve_path(self.root, "/alpha/x.log"),
            self.root.resolve() / "alpha" / "x.log",
        )

    def test_rejects_escape(self):
        with self.assertRaises(ValueError):
            log_store.resolve_path(self.root, "../etc/passwd")
        with self.assertRaises(ValueError):
            log_store.resolve_path(self.root, "alpha/../../x")


class BreadcrumbTests(unittest.TestCase):
    def test_root_has_none(self):
        self.assertEqual(log_store.breadcrumbs(""), [])
        self.assertEqual(log_store.breadcrumbs("/"), [])

    def test_prefixes_outermost_first(self):
        self.assertEqual(
            log_store.breadcrumbs("/ci/build/run.log"),
            [
                DirEntry("/ci", "ci"),
                DirEntry("/ci/build", "build"),
                DirEntry("/ci/build/run.log", "run.log"),
            ],
        )


class ListDirectoryTests(LogDirTestCase):
    def test_sorting(self):
        dirs, files = log_store.list_directory(self.root, "/")
        self.assertEqual([d.name for d in dirs], ["beta", "alpha"])
        self.assertEqual([d.path for d in dirs], ["/beta", "/alpha"])
        self.assertEqual([f.name for f in files], ["new.log", "old.log"])

    def test_dangling_symlink_is_listed(self):
        os.symlink(self.root / "missing.log", self.root / "dangling.log")
        _, files = log_store.list_directory(self.root, "/")
        self.assertIn("dangling.log", [f.name for f in files])

    def test_urls_include_prefix(self):
        _touch(self.root / "alpha" / "a.log", "x", time.time())
        _, files = log_store.list_directory(self.root / "alpha", "alpha")
        self.assertEqual(files[0].path, "/alpha/a.log")


class RenderLogTests(LogDirTestCase):
    def test_renders_html(self):
        self.assertEqual(
            log_store.render_log(self.root / "old.log"),
            'started\nhello <span style="color: #800000">world</span>\n',
        )

    def test_parse_errors_propagate(self):
        with self.assertRaises(ValueError):
            log_store.render_log(self.root / "new.log")


class SearchFileTests(LogDirTestCase):
    def test_matches_plain_text_and_keeps_styling(self):
        result = SearchResult(file=self.root / "old.log", url="/old.log", name="old.log")
        log_store.search_file(result, "o w")
        self.assertEqual(result.html, 'hello <span style="color: #800000">world</span>\n')
        self.assertTrue(result.has_results)
        self.assertIsNotNone(result.mtime)

    def test_skips_unparsable_lines_and_strips_cr(self):
        result = SearchResult(file=self.root / "new.log", url="/new.log", name="new.log")
        log_store.search_file(result, "world")
        self.assertEqual(result.html, "world peace\n")

    def test_no_match(self):
        result = SearchResult(file=self.root / "old.log", url="/old.log", name="old.log")
        log_store.search_file(result, "missing")
        self.assertEqual(result.html, "")
        self.assertFalse(result.has_results)

    def test_unreadable_file_is_skipped(self):
        result = SearchResult(file=self.root / "gone.log", url="/gone.log", name="gone.log")
        log_store.search_file(result, "x")
        self.assertFalse(result.has_results)
        self.assertIsNone(result.mtime)


class SearchTests(LogDirTestCase, unittest.IsolatedAsyncioTestCase):
    async def test_searches_files_newest_first(self):
        results = await log_store.search("world", self.root, "/", workers=1)
        self.assertEqual([r.name for r in results], ["new.log", "old.log"])
        self.assertEqual([r.url for r in results], ["/new.log", "/old.log"])
        self.assertTrue(all(r.has_results for r in results))

    async def test_empty_directory(self):
        self.assertEqual(await log_store.search("x", self.root / "alpha", "/alpha"), [])

    async def test_directory_scan_runs_in_worker_thread(self):
        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            await log_store.search("world", self.root, "/")
        self.assertIs(to_thread.call_args_list[0].args[0], log_store._search_targets)

    async def test_timeout(self):
        def slow(result, query):
            time.sleep(0.5)

        with patch.object(log_store, "search_file", slow):
            with self.assertRaises(asyncio.TimeoutError):
                await log_store.search("x", self.root, "/", timeout=0.05)


if __name__ == "__main__":
    unittest.main()

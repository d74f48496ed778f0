"""CLI parsing, config building and main() behavior."""

from __future__ import annotations

import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

import pyperclip

from code2clipboard import (
    DEFAULT_IGNORE,
    ConfigBuilder,
    ConfigurationError,
    OutputWriter,
    ScanConfig,
    create_parser,
    main,
    split_csv,
)


class SplitCsvTests(unittest.TestCase):
    def test_trims_and_drops_empty_items(self) -> None:
        self.assertEqual(split_csv(" a, b ,,c "), ["a", "b", "c"])

    def test_empty_values(self) -> None:
        self.assertEqual(split_csv(""), [])
        self.assertEqual(split_csv(None), [])


class CreateParserTests(unittest.TestCase):
    def test_defaults_without_environment(self) -> None:
        args = create_parser(env={}).parse_args([])

        self.assertEqual(args.root_dir, Path("."))
        self.assertEqual(args.max_depth, 5)
        self.assertEqual(args.max_filesize, 100)
        self.assertEqual(args.max_files, 100)
        self.assertEqual(split_csv(args.ignore), list(DEFAULT_IGNORE))
        self.assertFalse(args.omit_tree)
        self.assertFalse(args.plain_delimiter)
        self.assertFalse(args.gitignore)

    def test_environment_supplies_defaults(self) -> None:
        env = {
            "MAX_DEPTH": "2",
            "MAX_FILE_SIZE": "50",
            "MAX_FILES": "10",
            "EXTENSIONS": "py,md",
            "OMIT_TREE": "true",
            "USE_MARKDOWN_DELIMITER": "false",
            "PROJECT_DESCRIPTION": "From env",
        }

        args = create_parser(env=env).parse_args([])

        self.assertEqual(args.max_depth, 2)
        self.assertEqual(args.max_filesize, 50)
        self.assertEqual(args.max_files, 10)
        self.assertEqual(args.extensions, "py,md")
        self.assertTrue(args.omit_tree)
        self.assertTrue(args.plain_delimiter)
        self.assertEqual(args.project_description, "From env")

    def test_flags_override_environment(self) -> None:
        args = create_parser(env={"MAX_FILES": "10"}).parse_args(["-f", "200", "--ei", "json"])

        self.assertEqual(args.max_files, 200)
        self.assertEqual(args.extensions_ignore, "json")

    def test_invalid_environment_number_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            create_parser(env={"MAX_DEPTH": "deep"})


class ConfigBuilderTests(unittest.TestCase):
    def test_builds_config_from_arguments(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            args = create_parser(env={}).parse_args([
                tmp,
                "--ignore", "dist, build",
                "-i", "*.snap",
                "-e", "py, md",
                "--ei", ".txt",
                "-s", "2",
                "--plain-delimiter",
                "--no-clipboard",
            ])

            config = ConfigBuilder.from_args(args)

            self.assertEqual(config.root_dir, Path(tmp).resolve())
            self.assertEqual(config.ignore_patterns, ("dist", "build", "*.snap"))
            self.assertEqual(config.extensions, frozenset({"py", "md"}))
            self.assertEqual(config.extensions_ignore, (".txt",))
            self.assertEqual(config.max_file_size, 2048)
            self.assertFalse(config.use_markdown_delimiter)
            self.assertFalse(config.copy_to_clipboard)
            self.assertIsNone(config.output_file)

    def test_invalid_limits_are_rejected(self) -> None:
        args = create_parser(env={}).parse_args(["-f", "0"])

        with self.assertRaises(ConfigurationError):
            ConfigBuilder.from_args(args)


class OutputWriterTests(unittest.TestCase):
    def test_writes_output_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "out" / "context.md"
            config = ScanConfig(root_dir=Path(tmp), copy_to_clipboard=False, output_file=target)

            with redirect_stderr(io.StringIO()):
                self.assertTrue(OutputWriter.write("hello", config))

            self.assertEqual(target.read_text(encoding="utf-8"), "hello")

    def test_clipboard_failure_returns_false(self) -> None:
        config = ScanConfig(root_dir=Path("."))
        with mock.patch(
            "code2clipboard.pyperclip.copy",
            side_effect=pyperclip.PyperclipException("no clipboard"),
        ):
            self.assertFalse(OutputWriter.write("hello", config))


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        environ = mock.patch.dict(os.environ)
        environ.start()
        self.addCleanup(environ.stop)
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        for name in ("MAX_DEPTH", "MAX_FILE_SIZE", "MAX_FILES", "IGNORE", "ADD_IGNORE",
                     "EXTENSIONS", "EXTENSIONS_IGNORE", "OMIT_TREE", "OUTPUT_TO_CONSOLE",
                     "USE_MARKDOWN_DELIMITER", "USE_GITIGNORE", "PROJECT_DESCRIPTION"):
            os.environ.pop(name, None)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_main(self, *argv: str):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_copies_report_to_clipboard(self) -> None:
        (self.root / "app.py").write_text("print('hi')\n", encoding="utf-8")

        with mock.patch("code2clipboard.pyperclip.copy") as copy:
            code, stdout, stderr = self.run_main(str(self.root))

        self.assertEqual(code, 0)
        copy.assert_called_once()
        copied = copy.call_args[0][0]
        self.assertIn("### app.py", copied)
        self.assertIn("print('hi')", copied)
        self.assertEqual(stdout, "")
        self.assertIn("Copied Files:", stderr)
        self.assertIn("1 files to the clipboard", stderr)

    def test_console_output_without_clipboard(self) -> None:
        (self.root / "app.py").write_text("x = 1\n", encoding="utf-8")

        with mock.patch("code2clipboard.pyperclip.copy") as copy:
            code, stdout, _ = self.run_main(str(self.root), "-c", "--no-clipboard")

        self.assertEqual(code, 0)
        copy.assert_not_called()
        self.assertIn("## Project Summary:", stdout)
        self.assertIn("### app.py", stdout)

    def test_missing_root_exits_with_error(self) -> None:
        with mock.patch("code2clipboard.pyperclip.copy") as copy:
            code, _, _ = self.run_main(str(self.root / "missing"))

        self.assertEqual(code, 1)
        copy.assert_not_called()

    def test_clipboard_failure_exits_with_error(self) -> None:
        (self.root / "app.py").write_text("x = 1\n", encoding="utf-8")

        with mock.patch(
            "code2clipboard.pyperclip.copy",
            side_effect=pyperclip.PyperclipException("no clipboard"),
        ):
            code, _, _ = self.run_main(str(self.root))

        self.assertEqual(code, 1)

    def test_no_matching_files_leaves_clipboard_alone(self) -> None:
        (self.root / "notes.txt").write_text("text", encoding="utf-8")

        with mock.patch("code2clipboard.pyperclip.copy") as copy:
            code, _, stderr = self.run_main(str(self.root), "-e", "py")

        self.assertEqual(code, 0)
        copy.assert_not_called()
        self.assertIn("No files found.", stderr)

    def test_output_file_option(self) -> None:
        (self.root / "app.py").write_text("x = 1\n", encoding="utf-8")
        target = self.root / "report.md"

        code, _, _ = self.run_main(str(self.root), "--no-clipboard", "-o", str(target), "-e", "py")

        self.assertEqual(code, 0)
        self.assertIn("### app.py", target.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()

# test_org_reader.py
#
# Run:
#   python -m unittest -v
#
# Covers the include-expanding reader:
#   safe_input_path, un_quote_string, parse_include_target, resolve_include,
#   preamble_decision, read_with_includes, read_org_file
#
# A file ending with "\n" does NOT yield an extra "" line.

import tempfile
import unittest
from pathlib import Path

import org_reader as m
from config_loader import DEFAULT_CONFIG


class TestOrgReader(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    # ---------- helpers ----------
    def write(self, rel: str, content: str) -> Path:
        """
        Write `content` to a file relative to the temporary test directory.

        Returns:
            The absolute Path to the written file.
        """
        p = self.root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        return p

    # ---------- safe_input_path ----------
    def test_safe_input_path_resolves_existing_file(self):
        p = self.write("a.org", "x\n")
        self.assertEqual(m.safe_input_path(str(p)), p.resolve())

    def test_safe_input_path_rejects_empty_and_nul(self):
        with self.assertRaises(ValueError):
            m.safe_input_path("  ")
        with self.assertRaises(ValueError):
            m.safe_input_path("a\x00b")

    def test_safe_input_path_rejects_traversal(self):
        with self.assertRaises(ValueError):
            m.safe_input_path("../etc/passwd")

    def test_safe_input_path_missing_file_and_directory(self):
        with self.assertRaises(FileNotFoundError):
            m.safe_input_path(str(self.root / "missing.org"))
        with self.assertRaises(IsADirectoryError):
            m.safe_input_path(str(self.root))

    def test_safe_input_path_relative_to_root(self):
        p = self.write("notes/a.org", "x\n")
        self.assertEqual(m.safe_input_path("notes/a.org", root=self.root), p.resolve())

    # ---------- un_quote_string ----------
    def test_un_quote_string_double_quotes(self):
        self.assertEqual(m.un_quote_string('"file.org"', DEFAULT_CONFIG), "file.org")

    def test_un_quote_string_single_quotes(self):
        self.assertEqual(m.un_quote_string("'file.org'", DEFAULT_CONFIG), "file.org")

    def test_un_quote_string_no_quotes(self):
        self.assertEqual(m.un_quote_string("file.org", DEFAULT_CONFIG), "file.org")

    def test_un_quote_string_keeps_inner_whitespace_but_strips_outer(self):
        self.assertEqual(m.un_quote_string('"  file.org  "', DEFAULT_CONFIG), "file.org")

    # ---------- parse_include_target ----------
    def test_parse_include_target_forms(self):
        self.assertEqual(m.parse_include_target("#+INCLUDE child.org", DEFAULT_CONFIG), "child.org")
        self.assertEqual(m.parse_include_target('#+INCLUDE: "my file.org"', DEFAULT_CONFIG), "my file.org")
        self.assertEqual(
            m.parse_include_target("#+INCLUDE: code.py src python", DEFAULT_CONFIG), "code.py"
        )

    def test_parse_include_target_not_an_include(self):
        self.assertIsNone(m.parse_include_target("#+TITLE: Hello", DEFAULT_CONFIG))
        self.assertIsNone(m.parse_include_target("#+INCLUDE:", DEFAULT_CONFIG))

    # ---------- resolve_include ----------
    def test_resolve_include_relative_without_colon(self):
        main = self.write("main.org", "")
        resolved = m.resolve_include("#+INCLUDE child.org", main, DEFAULT_CONFIG)
        self.assertEqual(resolved, (self.root / "child.org").resolve())

    def test_resolve_include_relative_with_colon_and_quotes(self):
        main = self.write("dir/main.org", "")
        resolved = m.resolve_include('#+INCLUDE: "child.org"', main, DEFAULT_CONFIG)
        self.assertEqual(resolved, (self.root / "dir/child.org").resolve())

    def test_resolve_include_ignores_case_and_whitespace(self):
        main = self.write("dir/main.org", "")
        resolved = m.resolve_include('   #+include:   "child.org"  ', main, DEFAULT_CONFIG)
        self.assertEqual(resolved, (self.root / "dir/child.org").resolve())

    # ---------- preamble_decision ----------
    def test_preamble_decision_blank_line(self):
        skip, still = m.preamble_decision("", DEFAULT_CONFIG)
        self.assertTrue(skip)
        self.assertTrue(still)

    def test_preamble_decision_skippable_header_line(self):
        for line in ("#+TITLE: Hello", "  #+author: Y", "#+OPTIONS: toc:nil", "#+DATE: 2025-01-01"):
            skip, still = m.preamble_decision(line, DEFAULT_CONFIG)
            self.assertTrue(skip, line)
            self.assertTrue(still, line)

    def test_preamble_decision_first_content_ends_preamble(self):
        skip, still = m.preamble_decision("* Heading", DEFAULT_CONFIG)
        self.assertFalse(skip)
        self.assertFalse(still)

    def test_preamble_decision_non_skipped_header_ends_preamble(self):
        skip, still = m.preamble_decision("#+LANGUAGE: de", DEFAULT_CONFIG)
        self.assertFalse(skip)
        self.assertFalse(still)

    # ---------- read_with_includes ----------
    def test_read_with_includes_expands_depth_first_and_skips_included_preamble(self):
        self.write(
            "example.org",
            "\n".join([
                "#+TITLE: Example (skip)",
                "",
                "EXAMPLE-L1",
                "EXAMPLE-L2",
            ]) + "\n",
        )
        self.write(
            "redundant.org",
            "\n".join([
                "#+TITLE: Redundant (skip)",
                "#+AUTHOR: Someone (skip)",
                "",
                "REDUNDANT-L1",
                "#+INCLUDE: example.org",
                "REDUNDANT-L2",
            ]) + "\n",
        )
        main = self.write(
            "main.org",
            "\n".join([
                "#+TITLE: Main (keep; root)",
                "MAIN-L1",
                "#+INCLUDE: redundant.org",
                "MAIN-L2",
            ]) + "\n",
        )

        got = list(m.read_with_includes(main))
        expected = [
            "#+TITLE: Main (keep; root)",
            "MAIN-L1",
            "REDUNDANT-L1",
            "EXAMPLE-L1",
            "EXAMPLE-L2",
            "REDUNDANT-L2",
            "MAIN-L2",
        ]
        self.assertEqual(got, expected)

    def test_read_with_includes_does_not_expand_inside_blocks(self):
        self.write("child.org", "CHILD-L1\nCHILD-L2\n")
        main = self.write(
            "main.org",
            "\n".join([
                "TOP",
                "#+begin_example",
                "#+INCLUDE: child.org",
                "#+end_example",
                "#+BEGIN_SRC org",
                "#+INCLUDE: child.org",
                "#+END_SRC",
                "BOTTOM",
            ]) + "\n",
        )

        got = list(m.read_with_includes(main))
        expected = [
            "TOP",
            "#+begin_example",
            "#+INCLUDE: child.org",
            "#+end_example",
            "#+BEGIN_SRC org",
            "#+INCLUDE: child.org",
            "#+END_SRC",
            "BOTTOM",
        ]
        self.assertEqual(got, expected)

    def test_read_with_includes_does_not_expand_inside_drawers(self):
        self.write("child.org", "CHILD\n")
        main = self.write("main.org", ":NOTES:\n#+INCLUDE: child.org\n:END:\n#+INCLUDE: child.org\n")
        got = list(m.read_with_includes(main))
        self.assertEqual(got, [":NOTES:", "#+INCLUDE: child.org", ":END:", "CHILD"])

    def test_read_with_includes_preamble_ends_on_non_skipped_header(self):
        self.write(
            "inc.org",
            "\n".join([
                "#+TITLE: Inc title (skip)",
                "#+LANGUAGE: de (not skipped; ends preamble and is yielded)",
                "#+AUTHOR: Inc author (now content; should be yielded)",
                "INC-L1",
            ]) + "\n",
        )
        main = self.write("main.org", "#+INCLUDE: inc.org\n")

        got = list(m.read_with_includes(main))
        expected = [
            "#+LANGUAGE: de (not skipped; ends preamble and is yielded)",
            "#+AUTHOR: Inc author (now content; should be yielded)",
            "INC-L1",
        ]
        self.assertEqual(got, expected)

    def test_read_with_includes_preserves_blank_lines_in_body(self):
        self.write(
            "inc.org",
            "\n".join([
                "#+TITLE: skip",
                "",
                "L1",
                "",
                "L2",
            ]) + "\n",
        )
        main = self.write("main.org", "#+INCLUDE: inc.org\n")

        got = list(m.read_with_includes(main))
        self.assertEqual(got, ["L1", "", "L2"])

    def test_read_with_includes_skips_recursive_include(self):
        self.write("b.org", "B\n#+INCLUDE: a.org\n")
        main = self.write("a.org", "A\n#+INCLUDE: b.org\n")
        with self.assertLogs("org_reader", level="WARNING") as logs:
            got = list(m.read_with_includes(main))
        self.assertEqual(got, ["A", "B"])
        self.assertTrue(any("recursive" in line for line in logs.output))

    def test_read_with_includes_missing_file_raises(self):
        main = self.write("main.org", "#+INCLUDE: nowhere.org\n")
        with self.assertRaises(FileNotFoundError):
            list(m.read_with_includes(main))

    # ---------- read_org_file ----------
    def test_read_org_file_parses_included_headlines(self):
        self.write("part.org", "#+TITLE: ignored\n* Included\nbody\n")
        main = self.write("main.org", "#+TITLE: Main\n* First\n#+INCLUDE: part.org\n")
        doc = m.read_org_file(main)
        self.assertEqual(doc.keywords["TITLE"], "Main")
        self.assertEqual([hl.get("raw_value") for hl in doc.children], ["First", "Included"])


if __name__ == "__main__":
    unittest.main(verbosity=2)

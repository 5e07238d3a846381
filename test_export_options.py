import unittest

import export_options as m


class ExportOptionsTests(unittest.TestCase):

    # ---------- #+OPTIONS: ----------

    def test_parse_options_keyword(self):
        self.assertEqual(
            m.parse_options_keyword("toc:2 num:nil H:3 todo:nil"),
            {"toc": 2, "section_numbers": False, "headline_level": 3, "include_todo": False},
        )

    def test_parse_switches_and_lists(self):
        got = m.parse_options_keyword('toc:t f:nil d:("NOTES") \\n:t <:nil pri:t')
        self.assertEqual(got["toc"], True)
        self.assertEqual(got["footnotes"], "none")
        self.assertEqual(got["include_drawers"], ["NOTES"])
        self.assertTrue(got["preserve_breaks"])
        self.assertFalse(got["timestamps"])
        self.assertTrue(got["include_priority"])

    def test_malformed_and_unknown_flags_are_ignored(self):
        self.assertEqual(m.parse_options_keyword("toc:maybe H:-1 foo:bar todo:perhaps"), {})
        self.assertEqual(m.parse_options_keyword(None), {})

    def test_num_with_level_turns_numbering_on(self):
        self.assertEqual(m.parse_options_keyword("num:2"), {"section_numbers": True})

    # ---------- resolution ----------

    def test_document_options_apply_over_defaults(self):
        resolved = m.resolve_options({"OPTIONS": "toc:2"}, None, m.ExportOptions())
        self.assertEqual(resolved.toc, 2)

    def test_caller_wins_over_document(self):
        resolved = m.resolve_options({"OPTIONS": "toc:2"}, {"toc": False}, m.ExportOptions())
        self.assertFalse(resolved.toc)

    def test_unknown_caller_option_raises(self):
        with self.assertRaises(m.ExportOptionsError):
            m.resolve_options({}, {"colour": "red"}, m.ExportOptions())

    def test_non_mapping_caller_options_raise(self):
        with self.assertRaises(m.ExportOptionsError):
            m.resolve_options({}, [("toc", True)], m.ExportOptions())

    def test_defaults_are_not_shared(self):
        defaults = m.ExportOptions()
        resolved = m.resolve_options({}, None, defaults)
        resolved.exclude_tags.append("x")
        resolved.todo_keywords["todo"].append("LATER")
        self.assertEqual(defaults.exclude_tags, [])
        self.assertNotIn("LATER", defaults.todo_keywords["todo"])

    def test_error_hierarchy(self):
        self.assertTrue(issubclass(m.ExportOptionsError, m.ExportError))
        self.assertTrue(issubclass(m.ExportOptionsError, ValueError))

    # ---------- document keywords ----------

    def test_collect_document_macros(self):
        macros = m.collect_document_macros({"MACRO": ["greet Hello, $1!", "broken"]})
        self.assertEqual(macros, {"greet": "Hello, $1!"})

    def test_document_metadata(self):
        options = m.ExportOptions(title="Caller title")
        meta = m.document_metadata(options, {"TITLE": "Doc", "AUTHOR": "Ann"})
        self.assertEqual(meta["title"], "Caller title")
        self.assertEqual(meta["author"], "Ann")
        self.assertEqual(meta["language"], "en")


if __name__ == "__main__":
    unittest.main()

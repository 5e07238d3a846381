import unittest

import org_interpreter as m
from export_options import ExportOptionsError
from org_parser import parse_org_text
from org_tree import Affiliated, OrgNode, element


def org_of(source, **options):
    return m.interpret(parse_org_text(source), options or None)


class TestOrgInterpreter(unittest.TestCase):

    # ---------- document ----------

    def test_document_keywords_come_first(self):
        self.assertEqual(org_of("#+TITLE: Doc\n* A\n"), "#+TITLE: Doc\n\n* A")

    def test_headline_parts(self):
        out = org_of("* TODO [#A] Task :work:\nbody\n** Child\n")
        self.assertEqual(out, "* TODO [#A] Task :work:\nbody\n** Child")

    def test_line_ending_option(self):
        self.assertEqual(org_of("* A\n** B\n", line_ending="\r\n"), "* A\r\n** B")

    # ---------- objects ----------

    def test_code_and_verbatim_keep_their_markers(self):
        self.assertEqual(org_of("~c~ and =v=\n").strip(), "~c~ and =v=")

    def test_emphasis_and_links(self):
        out = org_of("*b* /i/ [[https://x.org][site]] [[*Intro]]\n").strip()
        self.assertEqual(out, "*b* /i/ [[https://x.org][site]] [[*Intro]]")

    def test_entities(self):
        self.assertEqual(org_of("\\alpha\n").strip(), "\\alpha")
        self.assertEqual(org_of("\\alpha\n", use_utf8_entities=True).strip(), "α")

    def test_timestamp_weekday_is_recomputed(self):
        self.assertIn("<2024-03-05 Tue +1w>", org_of("On <2024-03-05 Mon +1w>.\n"))
        self.assertIn(
            "<2024-03-05 Mon +1w>",
            org_of("On <2024-03-05 Mon +1w>.\n", preserve_formatting=True),
        )

    def test_footnote_reference(self):
        self.assertEqual(org_of("x[fn:1]\n").strip(), "x[fn:1]")

    def test_macro(self):
        node = OrgNode(type="macro", properties={"key": "greet", "args": ["Ada", "Bob"]})
        self.assertEqual(m.interpret_object(node), "{{{greet(Ada,Bob)}}}")

    # ---------- elements ----------

    def test_table_rules_are_collapsed(self):
        out = org_of("| a | b |\n|---+---|\n| 1 | 2 |\n#+TBLFM: $2=$1\n")
        self.assertEqual(out, "| a | b |\n|-\n| 1 | 2 |\n#+TBLFM: $2=$1")

    def test_lists(self):
        self.assertEqual(org_of("- [X] done\n- [ ] open\n"), "- [X] done\n- [ ] open")
        self.assertEqual(org_of("- term :: meaning\n"), "- term :: meaning")

    def test_src_block(self):
        source = "#+BEGIN_SRC python :results output\nprint(1)\n#+END_SRC\n"
        self.assertEqual(org_of(source), source.rstrip("\n"))

    def test_clock(self):
        clock = element(
            "clock",
            value="[2024-03-05 Tue 09:00]--[2024-03-05 Tue 11:00]",
            duration="2:00",
        )
        self.assertEqual(
            m.interpret_element(clock),
            "CLOCK: [2024-03-05 Tue 09:00]--[2024-03-05 Tue 11:00] =>  2:00",
        )

    def test_affiliated_keyword_order(self):
        affiliated = Affiliated(
            caption=("Short", "Long"),
            name="tbl",
            attr={"html": {"width": "50%"}},
            header=[":exports code"],
        )
        self.assertEqual(
            m.serialize_affiliated(affiliated),
            ["#+NAME: tbl", "#+CAPTION[Short]: Long", "#+HEADER: :exports code", "#+ATTR_HTML: :width 50%"],
        )

    def test_affiliated_keywords_precede_element(self):
        out = org_of("#+CAPTION: Prices\n| 1 |\n")
        self.assertEqual(out, "#+CAPTION: Prices\n| 1 |")

    # ---------- errors ----------

    def test_unknown_option_raises(self):
        with self.assertRaises(ExportOptionsError):
            org_of("text\n", colour="red")

    def test_unknown_element(self):
        with self.assertLogs("org_interpreter", level="WARNING"):
            out = m.interpret_element(OrgNode(type="mystery"))
        self.assertEqual(out, "# Unknown element: mystery")


if __name__ == "__main__":
    unittest.main()

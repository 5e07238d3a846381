import unittest

import export_markdown as m
from org_parser import parse_org_text
from org_tree import OrgNode


def md_of(source, **options):
    return m.export_to_markdown(parse_org_text(source), options)


class MarkdownExportTests(unittest.TestCase):

    # ---------- headings ----------

    def test_title_shifts_headlines_down(self):
        out = md_of("#+TITLE: Notes\n* Intro\ntext\n")
        self.assertTrue(out.startswith("# Notes\n"))
        self.assertIn('<a id="org-intro"></a>\n## Intro\n', out)

    def test_body_only_keeps_levels(self):
        out = md_of("#+TITLE: Notes\n* Intro\n", body_only=True)
        self.assertNotIn("# Notes", out)
        self.assertIn("\n# Intro\n", out)

    def test_section_numbers_are_opt_in(self):
        self.assertIn("# Intro", md_of("* Intro\n"))
        out = md_of("* Intro\n** Sub\n", section_numbers=True)
        self.assertIn("# 1 Intro", out)
        self.assertIn("## 1.1 Sub", out)

    def test_heading_anchors_can_be_disabled(self):
        self.assertNotIn("<a id=", md_of("* Intro\n", heading_anchors=False))

    def test_todo_and_tags(self):
        self.assertIn("# TODO Task `work`", md_of("* TODO Task :work:\n"))

    def test_table_of_contents(self):
        out = md_of("* One\n** Sub\n", toc=True)
        self.assertIn("- [One](#org-one)\n  - [Sub](#org-sub)\n", out)
        out = md_of("* One\n** Sub\n", toc=True, section_numbers=True)
        self.assertIn("- [1 One](#org-one)\n  - [1.1 Sub](#org-sub)\n", out)

    # ---------- elements ----------

    def test_pipe_table(self):
        out = md_of("| name | qty |\n|---+---|\n| apple | 3 |\n")
        self.assertIn("| name  | qty |\n| ----- | --- |\n| apple | 3   |\n", out)

    def test_src_block_and_results(self):
        out = md_of("#+BEGIN_SRC python\nx = 1\n#+END_SRC\n: 1\n")
        self.assertIn("```python\nx = 1\n```\n", out)
        self.assertIn("```\n1\n```\n", out)

    def test_exports_none(self):
        out = md_of("#+BEGIN_SRC python :exports none\nx = 1\n#+END_SRC\n: 1\n")
        self.assertNotIn("```", out)

    def test_fence_grows_around_backticks(self):
        self.assertIn("````\na ``` b\n````", md_of("#+BEGIN_EXAMPLE\na ``` b\n#+END_EXAMPLE\n"))

    def test_lists(self):
        self.assertIn("- [x] done\n- [ ] open\n", md_of("- [X] done\n- [ ] open\n"))
        self.assertIn("1. a\n2. b\n", md_of("1. a\n2. b\n"))
        self.assertIn("- **term**: meaning", md_of("- term :: meaning\n"))

    def test_quote(self):
        self.assertIn("> Wise words.", md_of("#+begin_quote\nWise words.\n#+end_quote\n"))

    # ---------- objects ----------

    def test_inline_markup(self):
        self.assertIn("**b** *i* ~~s~~ `c`", md_of("*b* /i/ +s+ ~c~\n"))

    def test_links(self):
        self.assertIn("[Intro](#org-intro)", md_of("* Intro\nSee [[*Intro]].\n"))
        self.assertIn("![](cat.png)", md_of("[[file:cat.png]]\n"))
        self.assertIn("<https://x.org>", md_of("See https://x.org now\n"))
        self.assertIn("[site](https://x.org)", md_of("[[https://x.org][site]]\n"))

    def test_footnotes(self):
        out = md_of("Text[fn:1].\n\n[fn:1] The note.\n")
        self.assertIn("Text[^1].", out)
        self.assertIn("[^1]: The note.", out)

    def test_citation(self):
        self.assertIn("[@a; @b]", md_of("[cite:@a;@b]\n"))

    def test_unknown_node_placeholder(self):
        backend = m.MarkdownExportBackend()
        state = m.ExportState(options=m.MarkdownExportOptions())
        self.assertEqual(
            backend.export_element(OrgNode(type="mystery"), state),
            "<!-- Unknown element type: mystery -->\n",
        )


if __name__ == "__main__":
    unittest.main()

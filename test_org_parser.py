import unittest

import org_parser as m
from config_loader import DEFAULT_CONFIG


def body(doc, index=0):
    """Element types of the index-th top-level headline's own section."""
    return [node.type for node in doc.children[index].section.children]


class TestOrgParser(unittest.TestCase):

    # ---------- headlines ----------

    def test_headline_parts(self):
        doc = m.parse_org_text("* TODO [#A] Write report :work:urgent:\n")
        hl = doc.children[0]
        self.assertEqual(hl.get("level"), 1)
        self.assertEqual(hl.get("todo_keyword"), "TODO")
        self.assertEqual(hl.get("todo_type"), "todo")
        self.assertEqual(hl.get("priority"), "A")
        self.assertEqual(hl.get("tags"), ["work", "urgent"])
        self.assertEqual(hl.get("raw_value"), "Write report")

    def test_done_keyword(self):
        hl = m.parse_org_text("** DONE Ship it").children[0]
        self.assertEqual(hl.get("todo_type"), "done")
        self.assertEqual(hl.get("level"), 2)

    def test_document_todo_keywords(self):
        doc = m.parse_org_text("* FEEDBACK Review\n#+TODO: TODO FEEDBACK | DONE\n* TODO Plain\n")
        self.assertEqual(doc.children[0].get("todo_keyword"), "FEEDBACK")
        self.assertEqual(doc.keyword_lists["TODO"], ["TODO FEEDBACK | DONE"])

    def test_parse_todo_keyword_line(self):
        self.assertEqual(
            m.parse_todo_keyword_line("TODO(t) NEXT | DONE(d) CANCELLED"),
            (["TODO", "NEXT"], ["DONE", "CANCELLED"]),
        )
        self.assertEqual(m.parse_todo_keyword_line("TODO FEEDBACK DONE"), (["TODO", "FEEDBACK"], ["DONE"]))

    def test_headlines_nest_by_level(self):
        doc = m.parse_org_text("* A\n** A1\n*** A1a\n** A2\n* B\n")
        self.assertEqual([h.get("raw_value") for h in doc.children], ["A", "B"])
        a = doc.children[0]
        self.assertEqual([h.get("raw_value") for h in a.children], ["A1", "A2"])
        self.assertEqual(a.children[0].children[0].get("raw_value"), "A1a")

    def test_bold_line_is_not_a_headline(self):
        doc = m.parse_org_text("*bold* text\n")
        self.assertEqual(doc.children, [])
        self.assertEqual(doc.section.children[0].type, "paragraph")

    def test_property_drawer_ids(self):
        doc = m.parse_org_text(
            "* Intro\n:PROPERTIES:\n:CUSTOM_ID: intro\n:ID: 1234\n:END:\nBody text.\n"
        )
        hl = doc.children[0]
        self.assertEqual(hl.get("custom_id"), "intro")
        self.assertEqual(hl.get("id"), "1234")
        self.assertEqual(body(doc), ["property-drawer", "paragraph"])

    # ---------- keywords ----------

    def test_keyword_routing(self):
        doc = m.parse_org_text(
            "#+TITLE: Report\n"
            "#+MACRO: greet Hello, $1!\n"
            "#+PROPERTY: header-args :eval no\n"
            "#+FOO: bar\n"
        )
        self.assertEqual(doc.keywords["TITLE"], "Report")
        self.assertEqual(doc.keyword_lists["MACRO"], ["greet Hello, $1!"])
        self.assertEqual(doc.properties["header-args"], ":eval no")
        keyword = doc.section.children[0]
        self.assertEqual((keyword.type, keyword.get("key"), keyword.get("value")), ("keyword", "FOO", "bar"))

    def test_lone_tblfm_is_dropped(self):
        doc = m.parse_org_text("text\n\n#+TBLFM: $1=2\n")
        self.assertEqual([n.type for n in doc.section.children], ["paragraph"])

    def test_babel_call(self):
        doc = m.parse_org_text("#+CALL: double[:results raw](n=4)\n")
        call = doc.section.children[0]
        self.assertEqual(call.type, "babel-call")
        self.assertEqual(call.get("call"), "double")
        self.assertEqual(call.get("inside_header"), ":results raw")
        self.assertEqual(call.get("arguments"), "n=4")

    def test_affiliated_keywords(self):
        doc = m.parse_org_text(
            "#+NAME: tbl\n#+CAPTION[Short]: Long caption\n#+ATTR_HTML: :class wide :border 1\n| a |\n"
        )
        table = doc.section.children[0]
        self.assertEqual(table.affiliated.name, "tbl")
        self.assertEqual(table.affiliated.caption, ("Short", "Long caption"))
        self.assertEqual(table.affiliated.caption_text(), "Long caption")
        self.assertEqual(table.affiliated.attr["html"], {"class": "wide", "border": "1"})

    def test_parse_attr_args(self):
        self.assertEqual(
            m.parse_attr_args(":width 50% :class big img-rounded :center"),
            {"width": "50%", "class": "big img-rounded", "center": "true"},
        )

    # ---------- blocks ----------

    def test_src_block(self):
        doc = m.parse_org_text(
            "#+NAME: hello\n#+BEGIN_SRC python :exports both\n  print('hi')\n  ,* not a headline\n#+END_SRC\n"
        )
        block = doc.section.children[0]
        self.assertEqual(block.type, "src-block")
        self.assertEqual(block.get("language"), "python")
        self.assertEqual(block.get("parameters"), ":exports both")
        self.assertEqual(block.get("value"), "print('hi')\n* not a headline")
        self.assertEqual(block.affiliated.name, "hello")

    def test_greater_blocks_parse_their_contents(self):
        doc = m.parse_org_text("#+begin_quote\nSome *bold* words.\n#+end_quote\n")
        quote = doc.section.children[0]
        self.assertEqual(quote.type, "quote-block")
        self.assertEqual(quote.children[0].type, "paragraph")

    def test_special_block(self):
        doc = m.parse_org_text("#+BEGIN_warning\nCareful.\n#+END_warning\n")
        block = doc.section.children[0]
        self.assertEqual(block.type, "special-block")
        self.assertEqual(block.get("block_type"), "warning")

    def test_unterminated_block_stays_text(self):
        doc = m.parse_org_text("#+BEGIN_SRC python\nx = 1\n")
        self.assertEqual([n.type for n in doc.section.children], ["paragraph"])

    def test_latex_environment(self):
        doc = m.parse_org_text("\\begin{equation}\nx = 1\n\\end{equation}\n")
        env = doc.section.children[0]
        self.assertEqual(env.type, "latex-environment")
        self.assertTrue(env.get("value").endswith("\\end{equation}"))

    # ---------- other elements ----------

    def test_table_rows_and_formulas(self):
        doc = m.parse_org_text("| a | b |\n|---+---|\n| 1 | 2 |\n#+TBLFM: $2=$1\n")
        table = doc.section.children[0]
        self.assertEqual(table.type, "table")
        self.assertEqual([r.get("row_type") for r in table.children], ["standard", "rule", "standard"])
        self.assertEqual([c.get("value") for c in table.children[2].children], ["1", "2"])
        self.assertEqual(table.get("tblfm"), ["$2=$1"])

    def test_drawer_clock_and_planning(self):
        doc = m.parse_org_text(
            "* Task\n"
            "SCHEDULED: <2024-03-05 Tue> DEADLINE: <2024-03-08 Fri>\n"
            ":LOGBOOK:\n"
            "CLOCK: [2024-03-05 Tue 09:00]--[2024-03-05 Tue 10:30] =>  1:30\n"
            ":END:\n"
        )
        planning, drawer = doc.children[0].section.children
        self.assertEqual(planning.type, "planning")
        self.assertEqual(planning.get("scheduled").get("day_start"), 5)
        self.assertEqual(planning.get("deadline").get("day_start"), 8)
        self.assertIsNone(planning.get("closed"))
        self.assertEqual(drawer.get("name"), "LOGBOOK")
        clock = drawer.children[0]
        self.assertEqual(clock.type, "clock")
        self.assertEqual(clock.get("duration"), "1:30")
        self.assertEqual(clock.get("start").get("hour_start"), 9)
        self.assertEqual(clock.get("end").get("minute_start"), 30)

    def test_lists(self):
        doc = m.parse_org_text("- [X] done\n- [ ] open\n")
        self.assertEqual(doc.section.children[0].get("list_type"), "unordered")
        checkboxes = [item.get("checkbox") for item in doc.section.children[0].children]
        self.assertEqual(checkboxes, ["on", "off"])

        doc = m.parse_org_text("1. first\n2. second\n")
        self.assertEqual(doc.section.children[0].get("list_type"), "ordered")

    def test_descriptive_list(self):
        doc = m.parse_org_text("- term :: meaning\n")
        plain_list = doc.section.children[0]
        self.assertEqual(plain_list.get("list_type"), "descriptive")
        self.assertEqual(plain_list.children[0].get("tag")[0].get("value"), "term")

    def test_nested_list(self):
        doc = m.parse_org_text("- outer\n  - inner\n- second\n")
        outer = doc.section.children[0]
        self.assertEqual(len(outer.children), 2)
        self.assertEqual([n.type for n in outer.children[0].children], ["paragraph", "plain-list"])

    def test_footnote_definition(self):
        doc = m.parse_org_text("Text[fn:1].\n\n[fn:1] The note.\n")
        definition = doc.section.children[1]
        self.assertEqual(definition.type, "footnote-definition")
        self.assertEqual(definition.get("label"), "1")

    def test_fixed_width_comment_and_rule(self):
        doc = m.parse_org_text(": out 1\n: out 2\n# note\n-----\n")
        fixed, comment, rule = doc.section.children
        self.assertEqual((fixed.type, fixed.get("value")), ("fixed-width", "out 1\nout 2"))
        self.assertEqual((comment.type, comment.get("value")), ("comment", "note"))
        self.assertEqual(rule.type, "horizontal-rule")

    # ---------- inline objects ----------

    def test_emphasis(self):
        nodes = m.parse_objects("see *this* and =that= or ~code~ /it/ _u_ +s+")
        types = [n.type for n in nodes if n.type != "plain-text"]
        self.assertEqual(types, ["bold", "verbatim", "code", "italic", "underline", "strike-through"])
        self.assertEqual(nodes[3].get("value"), "that")

    def test_emphasis_needs_word_boundaries(self):
        nodes = m.parse_objects("a*b*c 2 * 3 * 4")
        self.assertEqual([n.type for n in nodes], ["plain-text"])

    def test_links(self):
        link = m.parse_objects("[[https://x.org][the site]]")[0]
        self.assertEqual((link.get("link_type"), link.get("path")), ("https", "https://x.org"))
        self.assertEqual(link.children[0].get("value"), "the site")
        self.assertEqual(m.parse_objects("[[*Intro]]")[0].get("link_type"), "headline")
        self.assertEqual(m.parse_objects("see https://x.org/a.")[1].get("path"), "https://x.org/a")

    def test_classify_link(self):
        self.assertEqual(m.classify_link("file:img/a.png"), ("file", "img/a.png"))
        self.assertEqual(m.classify_link("file:notes.org::*Heading"), ("file", "notes.org"))
        self.assertEqual(m.classify_link("#setup"), ("custom-id", "setup"))
        self.assertEqual(m.classify_link("cite:knuth84"), ("cite", "knuth84"))
        self.assertEqual(m.classify_link("./a.png"), ("file", "./a.png"))
        self.assertEqual(m.classify_link("Some target"), ("fuzzy", "Some target"))

    def test_timestamps(self):
        node, end = m.parse_timestamp("<2024-03-05 Tue 10:00 +1w>")
        self.assertEqual(node.get("timestamp_type"), "active")
        self.assertEqual((node.get("hour_start"), node.get("repeater_type"), node.get("repeater_unit")),
                         (10, "+", "w"))
        source = "[2024-03-05 Tue]--[2024-03-07 Thu]"
        node, end = m.parse_timestamp(source)
        self.assertEqual(node.get("timestamp_type"), "inactive-range")
        self.assertEqual(node.get("day_end"), 7)
        self.assertEqual(end, len(source))

    def test_footnote_references(self):
        nodes = m.parse_objects("a[fn:1] b[fn:note:inline *text*]")
        refs = [n for n in nodes if n.type == "footnote-reference"]
        self.assertEqual([r.get("label") for r in refs], ["1", "note"])
        self.assertEqual(refs[1].children[1].type, "bold")

    def test_misc_objects(self):
        nodes = m.parse_objects("{{{greet(Ada, Bob)}}} \\alpha $x^2$ [cite:@a;@b] [2/3] <<here>>")
        by_type = {n.type: n for n in nodes}
        self.assertEqual(by_type["macro"].get("args"), ["Ada", "Bob"])
        self.assertEqual(by_type["entity"].get("utf8"), "α")
        self.assertEqual(by_type["latex-fragment"].get("value"), "$x^2$")
        self.assertEqual(by_type["citation"].get("keys"), ["a", "b"])
        self.assertEqual(by_type["statistics-cookie"].get("value"), "[2/3]")
        self.assertEqual(by_type["target"].get("value"), "here")

    def test_prices_are_not_math(self):
        nodes = m.parse_objects("costs $5 and $6 today")
        self.assertEqual([n.type for n in nodes], ["plain-text"])

    def test_sub_and_superscripts(self):
        nodes = m.parse_objects("H_2O and x^{n+1}")
        self.assertEqual([n.type for n in nodes], ["plain-text", "subscript", "plain-text", "superscript"])

    def test_inline_src_and_snippet(self):
        nodes = m.parse_objects("run src_python[:exports code]{print(1)} and @@html:<br>@@")
        src = next(n for n in nodes if n.type == "inline-src-block")
        self.assertEqual((src.get("language"), src.get("value")), ("python", "print(1)"))
        snippet = next(n for n in nodes if n.type == "export-snippet")
        self.assertEqual((snippet.get("backend"), snippet.get("value")), ("html", "<br>"))

    def test_accepts_explicit_config(self):
        doc = m.parse_org_text("* A\n", DEFAULT_CONFIG)
        self.assertEqual(len(doc.children), 1)


if __name__ == "__main__":
    unittest.main()

import base64
import io
import tempfile
import unittest
from pathlib import Path

import docx
from docx.oxml.ns import qn

import export_docx as m
from org_parser import parse_org_text
from org_tree import OrgNode

# 1x1 transparent PNG
PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def docx_of(source, **options):
    data = m.export_to_docx(parse_org_text(source), options)
    return docx.Document(io.BytesIO(data))


def styled(document):
    return [(p.style.name, p.text) for p in document.paragraphs if p.text]


class DocxExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    # ---------- document ----------

    def test_returns_docx_bytes(self):
        data = m.export_to_docx(parse_org_text("* A\n"))
        self.assertIsInstance(data, bytes)
        self.assertTrue(data.startswith(b"PK"))

    def test_title_and_headings(self):
        document = docx_of("#+TITLE: Report\n#+AUTHOR: Ann\n* Intro\ntext\n** Sub\n")
        self.assertEqual(
            styled(document),
            [("Title", "Report"), ("Normal", "Ann"), ("Heading 1", "1 Intro"),
             ("Normal", "text"), ("Heading 2", "1.1 Sub")],
        )
        self.assertEqual(document.core_properties.title, "Report")
        self.assertEqual(document.core_properties.author, "Ann")

    def test_body_only_and_no_numbers(self):
        document = docx_of("#+TITLE: Report\n* Intro\n", body_only=True, section_numbers=False)
        self.assertEqual(styled(document), [("Heading 1", "Intro")])

    def test_fonts_come_from_options(self):
        document = docx_of("text\n", font_family="Georgia", font_size=12)
        normal = document.styles["Normal"]
        self.assertEqual(normal.font.name, "Georgia")
        self.assertEqual(normal.font.size.pt, 12)

    def test_table_of_contents_field(self):
        document = docx_of("* A\n", toc=True)
        self.assertIn(("Heading 1", "Contents"), styled(document))
        self.assertIn('TOC \\o "1-3"', document.element.xml)

    # ---------- elements ----------

    def test_table(self):
        document = docx_of("| a | b |\n|---+---|\n| 1 | 2 |\n")
        table = document.tables[0]
        self.assertEqual(table.style.name, "Table Grid")
        self.assertEqual(table.cell(0, 0).text, "a")
        self.assertTrue(table.cell(0, 0).paragraphs[0].runs[0].font.bold)
        self.assertEqual(table.cell(1, 1).text, "2")
        self.assertFalse(table.cell(1, 1).paragraphs[0].runs[0].font.bold)

    def test_lists(self):
        document = docx_of("- x\n- [X] y\n  - deeper\n\n\n1. one\n")
        self.assertEqual(
            styled(document),
            [("List Bullet", "x"), ("List Bullet", "[X] y"), ("List Bullet 2", "deeper"),
             ("List Number", "one")],
        )

    def test_code_runs_use_code_font(self):
        document = docx_of("Run ~make~ now\n\n#+BEGIN_SRC sh\nls\n#+END_SRC\n")
        code_runs = [r for p in document.paragraphs for r in p.runs if r.font.name == "Consolas"]
        self.assertEqual([r.text for r in code_runs], ["make", "ls"])

    def test_quote_block_style(self):
        document = docx_of("#+begin_quote\nWise words.\n#+end_quote\n")
        self.assertEqual(styled(document), [("Quote", "Wise words.")])

    def test_footnotes(self):
        document = docx_of("Text[fn:1].\n\n[fn:1] The note.\n")
        paragraphs = styled(document)
        self.assertIn(("Normal", "Text[1]."), paragraphs)
        self.assertIn(("Heading 1", "Footnotes"), paragraphs)
        self.assertIn(("Normal", "[1] The note."), paragraphs)

    # ---------- objects ----------

    def test_emphasis_runs(self):
        document = docx_of("*b* /i/\n")
        runs = document.paragraphs[0].runs
        self.assertTrue(runs[0].font.bold)
        self.assertTrue(runs[2].font.italic)

    def test_external_link_relationship(self):
        document = docx_of("[[https://x.org][site]]\n")
        targets = [rel.target_ref for rel in document.part.rels.values() if rel.is_external]
        self.assertIn("https://x.org", targets)
        self.assertIn("w:hyperlink", document.paragraphs[0]._p.xml)

    def test_citations_render_as_key_lists(self):
        document = docx_of("[[citep:x,y]] and [cite:@a;@b]\n")
        self.assertEqual(document.paragraphs[0].text, "[x; y] and [a; b]")

    def test_bookmark_ids_restart_per_export(self):
        backend = m.DocxExportBackend()
        doc = parse_org_text("* A\n* B\n")
        for _ in range(2):
            document = docx.Document(io.BytesIO(backend.export_document(doc)))
            ids = [el.get(qn("w:id")) for el in document.element.body.iter(qn("w:bookmarkStart"))]
            self.assertEqual(ids, ["1", "2"])
        self.assertFalse(hasattr(backend, "_bookmark_counter"))

    def test_image_is_embedded(self):
        (self.root / "pixel.png").write_bytes(PIXEL_PNG)
        document = docx_of("[[file:pixel.png]]\n", base_path=str(self.root))
        self.assertEqual(len(document.inline_shapes), 1)

    def test_missing_image_falls_back_to_link(self):
        with self.assertLogs("export_docx", level="WARNING"):
            document = docx_of("[[file:missing.png]]\n", base_path=str(self.root))
        self.assertEqual(len(document.inline_shapes), 0)

    def test_unknown_node_placeholder(self):
        backend = m.DocxExportBackend()
        state = m.DocxExportState(options=m.DocxExportOptions(), document=docx.Document())
        backend.export_element(OrgNode(type="mystery"), state)
        self.assertEqual(state.document.paragraphs[-1].text, "[Unknown element type: mystery]")


if __name__ == "__main__":
    unittest.main()

import unittest

import export_latex as m
from org_parser import parse_org_text
from org_tree import OrgNode


def tex_of(source, **options):
    options.setdefault("body_only", True)
    return m.export_to_latex(parse_org_text(source), options)


class LatexExportTests(unittest.TestCase):

    # ---------- options ----------

    def test_latex_class_keyword_beats_caller(self):
        doc = parse_org_text("#+LATEX_CLASS: report\n* A\n")
        out = m.export_to_latex(doc, {"document_class": "article"})
        self.assertIn("\\documentclass[11pt,a4paper]{report}", out)

    def test_class_options_keyword(self):
        opts = m.resolve_latex_options(parse_org_text("#+LATEX_CLASS_OPTIONS: [12pt, twocolumn]\n"))
        self.assertEqual(opts.class_options, ["12pt", "twocolumn"])
        opts = m.resolve_latex_options(parse_org_text("#+LATEX_CLASS_OPTIONS: 12pt\n"), {"class_options": ["a5paper"]})
        self.assertEqual(opts.class_options, ["a5paper"])

    def test_latex_header_and_no_defaults(self):
        doc = parse_org_text(
            "#+LATEX_HEADER: \\usepackage{tikz}\n#+LATEX_HEADER: \\usepackage{siunitx}\n#+LATEX_NO_DEFAULTS: t\n"
        )
        out = m.export_to_latex(doc)
        self.assertIn("\\usepackage{tikz}\n\\usepackage{siunitx}", out)
        self.assertNotIn("\\usepackage{graphicx}", out)

    def test_default_packages(self):
        out = m.export_to_latex(parse_org_text("text\n"))
        self.assertIn("\\usepackage{graphicx}", out)
        self.assertIn("\\usepackage{minted}", out)
        self.assertIn("]{hyperref}", out)
        self.assertLess(out.index("{minted}"), out.index("{hyperref}"))

    def test_custom_header_replaces_preamble(self):
        out = m.export_to_latex(parse_org_text("text\n"), {"custom_header": "\\documentclass{memoir}"})
        self.assertTrue(out.startswith("\\documentclass{memoir}"))
        self.assertNotIn("\\usepackage", out)

    # ---------- headlines ----------

    def test_headline_sections(self):
        out = tex_of("* Intro\n** Details\n")
        self.assertIn("\\section{Intro}\n\\label{org-intro}", out)
        self.assertIn("\\subsection{Details}\n\\label{org-details}", out)

    def test_unnumbered_headlines_are_starred(self):
        self.assertIn("\\section*{Intro}", tex_of("#+OPTIONS: num:nil\n* Intro\n"))
        self.assertIn("\\section*{Aside}", tex_of("#+OPTIONS: tags:nil\n* Aside :nonum:\n"))

    def test_chapters(self):
        self.assertIn("\\chapter{Intro}", tex_of("* Intro\n", headline_start_level=0))

    def test_custom_id_label(self):
        out = tex_of("* Setup\n:PROPERTIES:\n:CUSTOM_ID: setup\n:END:\nSee [[#setup][here]].\n")
        self.assertIn("\\label{setup}", out)
        self.assertIn("\\hyperref[setup]{here}", out)

    def test_headline_link(self):
        self.assertIn("\\hyperref[org-intro]{Intro}", tex_of("* Intro\nSee [[*Intro]].\n"))

    def test_todo_and_tags(self):
        out = tex_of("* TODO Task :work:\n")
        self.assertIn("\\section{\\textbf{TODO} Task \\hfill :work:}", out)

    # ---------- elements ----------

    def test_text_is_escaped(self):
        self.assertIn("50\\% \\& \\$5", tex_of("50% & $5\n"))

    def test_src_block_engines(self):
        source = "#+BEGIN_SRC py\nx = 1\n#+END_SRC\n"
        self.assertIn("\\begin{minted}{python}\nx = 1\n\\end{minted}", tex_of(source))
        self.assertIn(
            "\\begin{lstlisting}[language=Python]\nx = 1\n\\end{lstlisting}",
            tex_of(source, minted=False, listings=True),
        )
        self.assertIn("\\begin{verbatim}\nx = 1\n\\end{verbatim}", tex_of(source, minted=False))

    def test_exports_none(self):
        out = tex_of("#+BEGIN_SRC python :exports none\nx = 1\n#+END_SRC\n: 1\n")
        self.assertNotIn("minted", out)
        self.assertNotIn("verbatim", out)

    def test_image_figure(self):
        out = tex_of("#+CAPTION: A cat\n#+NAME: fig:cat\n#+ATTR_LATEX: :width 5cm\n[[file:cat.png]]\n")
        self.assertIn("\\begin{figure}[htbp]\n\\centering\n\\includegraphics[width=5cm]{cat.png}", out)
        self.assertIn("\\caption{A cat}\n\\label{fig:cat}\n\\end{figure}", out)

    def test_table(self):
        out = tex_of("| a | b |\n|---+---|\n| 1 | 2 |\n")
        self.assertIn("\\begin{tabular}{ll}\n\\toprule\na & b \\\\\n\\midrule\n1 & 2 \\\\\n\\bottomrule", out)

    def test_captioned_table_floats(self):
        out = tex_of("#+CAPTION: Prices\n| 1 |\n")
        self.assertIn("\\begin{table}[htbp]\n\\centering\n\\begin{tabular}{l}", out)
        self.assertIn("\\caption{Prices}", out)

    def test_lists(self):
        out = tex_of("- a\n- [X] b\n")
        self.assertIn("\\begin{itemize}", out)
        self.assertIn("\\item a", out)
        self.assertIn("\\item $\\boxtimes$ b", out)

    def test_admonition(self):
        out = tex_of("#+BEGIN_note\nRead me.\n#+END_note\n")
        self.assertIn("\\begin{tcolorbox}[title=Note]", out)

    # ---------- objects ----------

    def test_inline_markup(self):
        out = tex_of("*b* /i/ =v= ~a|b~ \\alpha\n")
        for expected in ("\\textbf{b}", "\\textit{i}", "\\texttt{v}", "\\verb!a|b!", "$\\alpha$"):
            self.assertIn(expected, out)

    def test_footnotes_are_inlined(self):
        self.assertIn("Text\\footnote{The note.}.", tex_of("Text[fn:1].\n\n[fn:1] The note.\n"))

    def test_citations(self):
        self.assertIn("\\citet{knuth84}", tex_of("[cite/t:@knuth84]\n"))
        self.assertIn("\\cite{a,b}", tex_of("[cite:@a;@b]\n"))
        self.assertIn("\\citep{x,y}", tex_of("[[citep:x,y]]\n"))

    def test_urls(self):
        self.assertIn("\\url{https://x.org/a\\%20b}", tex_of("[[https://x.org/a%20b]]\n"))
        self.assertIn("\\href{https://x.org}{site}", tex_of("[[https://x.org][site]]\n"))

    # ---------- document ----------

    def test_full_document(self):
        doc = parse_org_text("#+TITLE: Report\n#+AUTHOR: Ann\n#+BIBLIOGRAPHY: refs\n* A\n")
        out = m.export_to_latex(doc, {"toc": 2})
        self.assertIn("\\title{Report}", out)
        self.assertIn("\\author{Ann}", out)
        self.assertIn("\\begin{document}\n\n\\maketitle", out)
        self.assertIn("\\setcounter{tocdepth}{2}\n\\tableofcontents", out)
        self.assertIn("\\bibliography{refs}", out)
        self.assertTrue(out.endswith("\\end{document}"))

    def test_unknown_node_placeholder(self):
        backend = m.LatexExportBackend()
        state = m.ExportState(options=m.LatexExportOptions())
        self.assertEqual(
            backend.export_element(OrgNode(type="mystery"), state),
            "% Unknown element type: mystery\n",
        )


if __name__ == "__main__":
    unittest.main()

#!/usr/bin/env python3
from __future__ import annotations
from io import BytesIO
from pathlib import Path
from typing import Optional

from dataclasses import dataclass, field
from urllib.parse import quote
import html as _html

from flask import Flask, abort, current_app, render_template_string, send_file, send_from_directory

from config_loader import DEFAULT_CONFIG, OrgReaderConfig, export_defaults_for, load_config
from export_options import ExportError
from org_export import FORMATS
from org_reader import read_org_file

BASE_DIR = Path.cwd()
CONFIG_PATH = BASE_DIR / "config.yml"

MIME_TYPES = {
    "html": "text/html",
    "latex": "application/x-tex",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "md": "text/markdown",
    "org": "text/plain",
}

app = Flask(__name__)
app.config.setdefault("BASE_DIR", BASE_DIR)
app.config.setdefault("ORG_DIR", BASE_DIR / "org")
app.config.setdefault("ORG_CONFIG", load_config(CONFIG_PATH) if CONFIG_PATH.is_file() else DEFAULT_CONFIG)


LAYOUT_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ page_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body { margin: 0; font-family: system-ui, sans-serif; }
    .layout { display: flex; min-height: 100vh; }
    .sidebar { width: 16rem; padding: 1rem; background: #f4f4f4; }
    .content { flex: 1; padding: 1rem 2rem; max-width: 60rem; }
    .fm-file.active a { font-weight: bold; }
    .exports a { margin-right: .5rem; }
  </style>
  <script src="https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js" async></script>
</head>
<body class="with-sidebar">
  <div class="layout">
    <aside class="sidebar">
      <div class="sidebar-title"><a href="/">Org Viewer</a></div>

      <div class="sidebar-section">
        <div class="sidebar-label">Root</div>
        <div class="fm-file {{ 'active' if current_file == 'README.org' else '' }}">
          <a href="/view/README.org">README.org</a>
        </div>
      </div>

      <div class="sidebar-section">
        <div class="sidebar-label">org/</div>
        {{ file_tree|safe }}
      </div>
    </aside>

    <main class="content">
    {% if current_file %}
    <div class="exports">
      {% for fmt in formats %}<a href="/export/{{ fmt }}/{{ current_file }}">{{ fmt }}</a>{% endfor %}
    </div>
    {% endif %}

    {{ content|safe }}
    </main>  </div>
</body>
</html>
"""

@dataclass
class FileTreeNode:
    dirs: dict[str, "FileTreeNode"] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

def _insert_path(root: FileTreeNode, rel_parts: tuple[str, ...]) -> None:
    node = root
    for part in rel_parts[:-1]:
        node = node.dirs.setdefault(part, FileTreeNode())
    node.files.append(rel_parts[-1])

def build_org_tree(org_dir: Path) -> FileTreeNode:
    root = FileTreeNode()
    if not org_dir.exists():
        return root

    for p in sorted(org_dir.glob("**/*.org")):
        # skip hidden dirs
        if any(seg.startswith(".") for seg in p.relative_to(org_dir).parts):
            continue
        rel = p.relative_to(org_dir)
        _insert_path(root, rel.parts)
    return root

def _open_dir_set_for_current(current_rel: str) -> set[str]:
    """
    current_rel is like 'org/2025/foo.org'. We want open dirs within the org dir:
      '2025' for example.
    """
    if not current_rel.startswith("org/"):
        return set()
    inner = current_rel[len("org/"):]
    parts = [p for p in inner.split("/") if p]
    # ancestors excluding filename
    open_dirs: set[str] = set()
    acc: list[str] = []
    for seg in parts[:-1]:
        acc.append(seg)
        open_dirs.add("/".join(acc))
    return open_dirs

def render_tree_html(node: FileTreeNode, *, prefix: str, open_dirs: set[str], current_file: str) -> str:
    """
    prefix: path inside org/ (e.g. '' or '2025')
    current_file: full rel path from the base dir (e.g. 'org/2025/foo.org')
    """
    out: list[str] = []

    # directories
    for dirname in sorted(node.dirs.keys()):
        child = node.dirs[dirname]
        child_prefix = f"{prefix}/{dirname}".strip("/")
        open_attr = " open" if child_prefix in open_dirs else ""
        out.append(f'<details class="fm-dir"{open_attr}>')
        out.append(f"<summary>{_html.escape(dirname)}/</summary>")
        out.append('<div class="fm-children">')
        out.append(render_tree_html(child, prefix=child_prefix, open_dirs=open_dirs, current_file=current_file))
        out.append("</div></details>")

    # files
    for fname in sorted(node.files):
        rel_inside_org = f"{prefix}/{fname}".strip("/")
        rel_from_base = f"org/{rel_inside_org}"
        href = "/view/" + quote(rel_from_base)
        active = " active" if rel_from_base == current_file else ""
        out.append(f'<div class="fm-file{active}"><a href="{href}">{_html.escape(fname)}</a></div>')

    return "".join(out)


def _base_dir() -> Path:
    return Path(current_app.config["BASE_DIR"]).resolve()


def _org_dir() -> Path:
    return Path(current_app.config["ORG_DIR"]).resolve()


def _reader_config() -> OrgReaderConfig:
    return current_app.config.get("ORG_CONFIG") or DEFAULT_CONFIG


def resolve_org_path(filename: str) -> Optional[Path]:
    """
    Map a URL path to an .org file: README.org at the base dir, or any
    .org file below the org dir. Anything else (traversal included) is None.
    """
    base_dir = _base_dir()
    org_path = (base_dir / filename).resolve()
    try:
        org_path.relative_to(base_dir)
    except ValueError:
        return None

    if not org_path.is_file() or org_path.suffix.lower() != ".org":
        return None

    if org_path != base_dir / "README.org":
        try:
            org_path.relative_to(_org_dir())
        except ValueError:
            return None
    return org_path


def _render_page(title: str, content: str, current_rel: str) -> str:
    tree = build_org_tree(_org_dir())
    file_tree_html = render_tree_html(
        tree,
        prefix="",
        open_dirs=_open_dir_set_for_current(current_rel),
        current_file=current_rel,
    )
    return render_template_string(
        LAYOUT_TEMPLATE,
        page_title=title,
        file_tree=file_tree_html,
        content=content,
        current_file=current_rel,
        formats=sorted(FORMATS),
    )


@app.route("/")
def index():
    content = """
      <h1>Org Viewer</h1>
      <p>Choose a file on the left.</p>
    """
    return _render_page("Org Viewer", content, "")


@app.route("/view/<path:filename>")
def view_file(filename: str):
    org_path = resolve_org_path(filename)
    if org_path is None:
        abort(404)

    cfg = _reader_config()
    doc = read_org_file(org_path, cfg)
    exporter = FORMATS["html"][0]
    options = export_defaults_for(cfg, "html")
    options["body_only"] = True
    body_html = exporter(doc, options)

    current_rel = org_path.relative_to(_base_dir()).as_posix()
    title = doc.keywords.get("TITLE") or current_rel
    return _render_page(title, body_html, current_rel)


@app.route("/export/<fmt>/<path:filename>")
def export_file(fmt: str, filename: str):
    if fmt not in FORMATS:
        abort(404)
    org_path = resolve_org_path(filename)
    if org_path is None:
        abort(404)

    cfg = _reader_config()
    exporter, suffix, defaults_key = FORMATS[fmt]
    try:
        result = exporter(read_org_file(org_path, cfg), export_defaults_for(cfg, defaults_key) or None)
    except ExportError as e:
        current_app.logger.warning("Export of %s as %s failed: %s", org_path, fmt, e)
        abort(500)

    data = result if isinstance(result, bytes) else result.encode("utf-8")
    return send_file(
        BytesIO(data),
        mimetype=MIME_TYPES[fmt],
        as_attachment=True,
        download_name=org_path.with_suffix(suffix).name,
    )


@app.route("/assets/<path:subpath>")
def assets(subpath: str):
    # Prevent directory traversal
    base_dir = _base_dir()
    asset_path = (base_dir / subpath).resolve()
    try:
        asset_path.relative_to(base_dir)
    except ValueError:
        abort(404)

    if not asset_path.exists():
        abort(404)

    return send_from_directory(base_dir, subpath)


if __name__ == "__main__":
    # Run in dev mode
    app.run(debug=False)

"""Text and HTML rendering of report sections."""
from __future__ import annotations
import html
from dataclasses import dataclass, field

LINE_WIDTH = 100
INDENT = "    "


@dataclass
class Section:
    """A titled block of report lines."""
    tag: str
    title: str
    lines: list[str] = field(default_factory=list)
    in_toc: bool = True


def separator_bar(title: str) -> list[str]:
    return [
        "-" * LINE_WIDTH,
        f"--- {title} ".ljust(LINE_WIDTH, "-"),
        "-" * LINE_WIDTH,
    ]


def align_column(lines: list[str], marker: str = " : ") -> list[str]:
    """Align the text before marker left and the value after it right.

    Lines without the marker are left as they are.
    """
    split = [line.split(marker, 1) if marker in line else None for line in lines]
    pairs = [s for s in split if s is not None]
    if not pairs:
        return lines
    width_before = max(len(p[0]) for p in pairs)
    width_after = max(len(p[1].split(" ", 1)[0]) for p in pairs)
    aligned = []
    for line, parts in zip(lines, split):
        if parts is None:
            aligned.append(line)
            continue
        value, _, rest = parts[1].partition(" ")
        text = f"{parts[0].ljust(width_before)}{marker}{value.rjust(width_after)}"
        if rest:
            text += " " + rest
        aligned.append(text)
    return aligned


def render_text(title_lines: list[str], sections: list[Section]) -> str:
    out = list(title_lines)
    for section in sections:
        out.append("")
        out.extend(separator_bar(section.title))
        out.append("")
        out.extend(section.lines)
    out.append("")
    out.append("=" * LINE_WIDTH)
    return "\n".join(out) + "\n"


def render_html(title: str, title_lines: list[str], sections: list[Section]) -> str:
    out = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{html.escape(title)}</title>",
        "<style>body { font-family: monospace; } pre { margin: 0 0 1em 0; }</style>",
        "</head>",
        "<body>",
        "<pre>",
    ]
    out.extend(html.escape(line) for line in title_lines)
    out.append("</pre>")

    toc = [s for s in sections if s.in_toc]
    if toc:
        out.append('<a name="toc"></a><h3>Table Of Contents</h3>')
        out.append("<ul>")
        for s in toc:
            out.append(f'<li><a href="#{s.tag}">{html.escape(s.title)}</a></li>')
        out.append("</ul>")

    for section in sections:
        out.append(f'<a name="{section.tag}"></a>')
        out.append("<pre>")
        out.extend(html.escape(line) for line in separator_bar(section.title))
        out.append('<a href="#toc">back to table of contents</a>')
        out.append("")
        out.extend(html.escape(line) for line in section.lines)
        out.append("</pre>")

    out.append("</body>")
    out.append("</html>")
    return "\n".join(out) + "\n"

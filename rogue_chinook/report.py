"""HTML report assembling the tables and figures of a run."""

import html
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

STYLE = """
body { font-family: Helvetica, Arial, sans-serif; max-width: 1100px; margin: 2em auto; color: #222; }
table { border-collapse: collapse; margin: 1em 0; font-size: 0.9em; }
th, td { border: 1px solid #ccc; padding: 4px 8px; text-align: right; }
th { background: #f0f0f0; }
img { max-width: 100%; margin: 1em 0; }
.caveat { background: #fff4e5; border-left: 4px solid #f0a030; padding: 0.5em 1em; }
"""


@dataclass
class ReportSection:
    """One titled block of prose, tables and figures."""

    title: str
    text: str = ""
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    figures: List[Path] = field(default_factory=list)


def render_table(df: pd.DataFrame, float_format: str = "{:.3f}") -> str:
    """Render a dataframe as an HTML table."""
    return df.to_html(index=False, border=0, na_rep="NA", float_format=float_format.format)


def render_section(section: ReportSection, base: Path) -> str:
    """Render one section; figure links are relative to `base`."""
    parts = [f"<h2>{html.escape(section.title)}</h2>"]
    if section.text:
        parts.append(f"<p>{html.escape(section.text)}</p>")
    for caption, table in section.tables.items():
        parts.append(f"<h3>{html.escape(caption)}</h3>")
        parts.append(render_table(table))
    for figure in section.figures:
        src = Path(os.path.relpath(figure, start=base)).as_posix()
        parts.append(f'<img src="{html.escape(src)}" alt="{html.escape(figure.stem)}">')
    return "\n".join(parts)


def write_html_report(
    path: Path,
    title: str,
    sections: List[ReportSection],
    caveats: Optional[List[str]] = None,
) -> Path:
    """Write the report; figure links are relative to the report's directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    body = [f"<h1>{html.escape(title)}</h1>"]
    body.append(f"<p>Generated {time.strftime('%Y-%m-%d %H:%M UTC', time.gmtime())}.</p>")
    if caveats:
        items = "".join(f"<li>{html.escape(caveat)}</li>" for caveat in caveats)
        body.append(f'<div class="caveat"><h2>Data-quality caveats</h2><ul>{items}</ul></div>')
    body.extend(render_section(section, path.parent) for section in sections)
    document = (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{html.escape(title)}</title>\n<style>{STYLE}</style>\n</head>\n<body>\n"
        + "\n".join(body)
        + "\n</body>\n</html>\n"
    )
    path.write_text(document, encoding="utf-8")
    return path

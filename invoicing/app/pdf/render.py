"""Invoice artifact rendering.

Templates live next to this module. When WeasyPrint is importable a PDF is
written; otherwise the rendered HTML is stored instead so reprints still work
on hosts without the native PDF stack.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Literal, Mapping

from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR), autoescape=select_autoescape()
)

ArtifactFormat = Literal["a4", "thermal"]

_TEMPLATE_MAP = {
    "a4": "invoice_a4.html",
    "thermal": "invoice_thermal.html",
}


def render_html(invoice: Mapping[str, object], fmt: str = "a4", **context) -> str:
    """Render ``invoice`` with the template for ``fmt``."""

    if fmt not in _TEMPLATE_MAP:
        raise ValueError(f"Unsupported format: {fmt}")
    template = _env.get_template(_TEMPLATE_MAP[fmt])
    return template.render(invoice=invoice, **context)


def _html_to_pdf(html: str) -> bytes | None:
    try:
        weasyprint = importlib.import_module("weasyprint")
        return weasyprint.HTML(string=html, base_url=str(TEMPLATE_DIR)).write_pdf()
    except Exception as exc:
        logger.info("pdf backend unavailable, storing html: %s", exc)
        return None


class InvoiceRenderer:
    """Write invoice artifacts below ``artifacts_dir``.

    ``render`` receives the fully computed invoice payload and never touches
    the totals; it only lays them out.
    """

    def __init__(self, artifacts_dir: str | Path, seller: Mapping[str, str] | None = None):
        self.artifacts_dir = Path(artifacts_dir)
        self.seller = dict(seller or {})

    def render(self, invoice: Mapping[str, object], fmt: ArtifactFormat = "a4") -> str:
        html = render_html(invoice, fmt, seller=self.seller)
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        stem = str(invoice["number"]).replace("/", "_") + f"-{fmt}"
        pdf = _html_to_pdf(html)
        if pdf is not None:
            out_path = self.artifacts_dir / f"{stem}.pdf"
            out_path.write_bytes(pdf)
        else:
            out_path = self.artifacts_dir / f"{stem}.html"
            out_path.write_text(html, encoding="utf-8")
        logger.info("rendered invoice %s as %s", invoice["number"], out_path.name)
        return str(out_path)


__all__ = ["ArtifactFormat", "InvoiceRenderer", "render_html"]

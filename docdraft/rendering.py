"""Filling .docx templates with collected field values."""

import copy
import io
import re
from pathlib import Path
from typing import Any

from docx import Document
from docx.table import Table, _Row
from docx.text.paragraph import Paragraph

from .config import config
from .errors import RenderError

logger = config.get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\s*([A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)?)\s*\}")


def _scalar(value: Any) -> str:
    if value is None or isinstance(value, (list, dict)):
        return ""
    return str(value)


def _fill_paragraph(paragraph: Paragraph, values: dict[str, Any]) -> None:
    """Replace placeholders in a paragraph, even when split across runs.

    The replaced text is written into the first run so its formatting wins.
    """
    runs = paragraph.runs
    if not runs:
        return
    text = "".join(run.text for run in runs)
    if "{" not in text:
        return
    filled = PLACEHOLDER.sub(lambda m: _scalar(values.get(m.group(1))), text)
    if filled == text:
        return
    runs[0].text = filled
    for run in runs[1:]:
        run.text = ""


def _fill_cells(cells: list, values: dict[str, Any]) -> None:
    # Merged cells show up once per grid column; fill each only once.
    seen: set[int] = set()
    for cell in cells:
        if id(cell._tc) in seen:  # noqa: SLF001
            continue
        seen.add(id(cell._tc))  # noqa: SLF001
        for paragraph in cell.paragraphs:
            _fill_paragraph(paragraph, values)
        for nested in cell.tables:
            _fill_table(nested, values)


def _loop_tag(row: _Row) -> str | None:
    """Name of the repeating group a table row is a template for, if any."""  # noqa: DOC201
    text = " ".join(cell.text for cell in row.cells)
    for match in PLACEHOLDER.finditer(text):
        if "." in match.group(1):
            return match.group(1).split(".", 1)[0]
    return None


def _expand_loop_row(table: Table, row: _Row, tag: str, data: dict[str, Any]) -> None:
    """Clone a template row once per data row, then drop the template."""
    rows = data.get(tag)
    for item in rows if isinstance(rows, list) else []:
        if not isinstance(item, dict):
            continue
        new_tr = copy.deepcopy(row._tr)  # noqa: SLF001
        row._tr.addprevious(new_tr)  # noqa: SLF001
        row_values = {**data, **{f"{tag}.{key}": value for key, value in item.items()}}
        _fill_cells(_Row(new_tr, table).cells, row_values)
    row._tr.getparent().remove(row._tr)  # noqa: SLF001


def _fill_table(table: Table, data: dict[str, Any]) -> None:
    for row in list(table.rows):
        tag = _loop_tag(row)
        if tag is None:
            _fill_cells(row.cells, data)
        else:
            _expand_loop_row(table, row, tag, data)


class DocxRenderer:
    """Renders ``{tag}`` placeholders and ``{loop.subtag}`` table rows."""

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = Path(template_dir or config.TEMPLATE_DOCX_DIR)

    def render(self, template_id: str, data: dict[str, Any]) -> bytes:
        """Fill a template with data.

        Missing tags render as empty text. A table row whose cells reference
        ``{group.field}`` is repeated for every row of ``data[group]``.

        Returns:
            The filled .docx file content.

        Raises:
            RenderError: If the template is missing or cannot be processed.
        """
        path = self.template_dir / template_id
        if not path.exists():
            msg = f"Template file {path} not found"
            raise RenderError(msg)

        try:
            document = Document(str(path))
            for table in document.tables:
                _fill_table(table, data)
            for paragraph in document.paragraphs:
                _fill_paragraph(paragraph, data)
            for section in document.sections:
                for part in (section.header, section.footer):
                    if part.is_linked_to_previous:
                        continue
                    for paragraph in part.paragraphs:
                        _fill_paragraph(paragraph, data)
                    for table in part.tables:
                        _fill_table(table, data)

            buffer = io.BytesIO()
            document.save(buffer)
        except Exception as e:
            logger.exception("Rendering %s failed", template_id)
            msg = f"Could not render {template_id}"
            raise RenderError(msg) from e

        logger.info("Rendered template %s", template_id)
        return buffer.getvalue()

"""Field post-processing applied before a document is rendered."""

import re
from typing import Any

from .models import LoopField, ScalarField, TemplateSchema

MONTH_NAMES = {
    "ru": (
        "января", "февраля", "марта", "апреля", "мая", "июня",
        "июля", "августа", "сентября", "октября", "ноября", "декабря",
    ),
    "kz": (
        "қаңтар", "ақпан", "наурыз", "сәуір", "мамыр", "маусым",
        "шілде", "тамыз", "қыркүйек", "қазан", "қараша", "желтоқсан",
    ),
    "en": (
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
}  # fmt: skip

_NUMERIC_DATE = re.compile(r"\b(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})\b")
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_WORD_DATE = re.compile(r"\b(\d{1,2})\s+([^\W\d_]+)\s+(\d{4})", re.UNICODE)


def _month_from_word(word: str) -> int | None:
    word = word.lower()
    if word == "май":
        return 5
    for names in MONTH_NAMES.values():
        for number, name in enumerate(names, start=1):
            # Match on the stem so "март" and "марта" both resolve
            if word[:3] == name.lower()[:3]:
                return number
    return None


def split_date(value: str, language: str = "ru") -> tuple[str, str, str]:
    """Split a free-text date into day, month name and year.

    Understands ``15.03.2024``, ``2024-03-15`` and ``15 марта 2024``. The
    month is returned as a word in ``language``.

    Returns:
        ``(day, month, year)``; empty strings when no date is recognized.
    """
    text = value.strip()
    day = month = year = None

    if match := _ISO_DATE.search(text):
        year, month, day = (int(part) for part in match.groups())
    elif match := _NUMERIC_DATE.search(text):
        day, month = int(match.group(1)), int(match.group(2))
        year = int(match.group(3))
        if year < 100:  # noqa: PLR2004
            year += 2000
    elif match := _WORD_DATE.search(text):
        day, year = int(match.group(1)), int(match.group(3))
        month = _month_from_word(match.group(2))

    if not day or not month or not year or not 1 <= month <= 12 or not 1 <= day <= 31:  # noqa: PLR2004
        return "", "", ""

    names = MONTH_NAMES.get(language, MONTH_NAMES["ru"])
    return str(day), names[month - 1], str(year)


def prepare_render_data(schema: TemplateSchema, collected: dict[str, Any]) -> dict[str, Any]:
    """Build the renderer payload from collected answers.

    Every declared tag is present in the result: unanswered scalars become
    empty strings and unanswered loops empty lists. Date fields gain
    ``<tag>_day``, ``<tag>_month`` and ``<tag>_year`` entries, and loop rows
    are numbered 1..n in their index column when the loop declares one.

    Returns:
        A new mapping; ``collected`` is not modified.
    """
    data: dict[str, Any] = dict(collected)

    for spec in schema.fields:
        value = collected.get(spec.tag)
        if isinstance(spec, LoopField):
            rows = [dict(row) for row in value] if isinstance(value, list) else []
            if spec.index_tag:
                for position, row in enumerate(rows, start=1):
                    row[spec.index_tag] = str(position)
            data[spec.tag] = rows
            continue

        text = "" if value is None else str(value)
        data[spec.tag] = text
        if isinstance(spec, ScalarField) and spec.split_date:
            day, month, year = split_date(text, schema.language)
            data[f"{spec.tag}_day"] = day
            data[f"{spec.tag}_month"] = month
            data[f"{spec.tag}_year"] = year

    return data

from __future__ import annotations

import re
from typing import Dict, List

BOM = "\ufeff"

CANONICAL_HEADERS = [
    "Name",
    "Join time",
    "Leave time",
    "Duration",
    "Guest",
    "Recording disclaimer",
]

HEADER_ALIASES: Dict[str, List[str]] = {
    "Name": [
        "name (original name)",
        "participant name",
        "user name",
        "nome",
        "nome (nome original)",
        "nome do participante",
    ],
    "Join time": [
        "join time (utc)",
        "joined at",
        "entrada",
        "hora de entrada",
        "horário de entrada",
    ],
    "Leave time": [
        "leave time (utc)",
        "left at",
        "saída",
        "hora de saída",
        "horário de saída",
    ],
    "Duration": [
        "duration (minutes)",
        "duration (mins)",
        "duration (min)",
        "duração",
        "duração (minutos)",
    ],
    "Guest": [
        "is guest",
        "convidado",
    ],
    "Recording disclaimer": [
        "recording disclaimer response",
        "recording consent",
        "aviso de gravação",
        "consentimento de gravação",
    ],
}

_LOOKUP: Dict[str, str] = {}
for _canonical, _aliases in HEADER_ALIASES.items():
    _LOOKUP[_canonical.lower()] = _canonical
    for _alias in _aliases:
        _LOOKUP[_alias] = _canonical

_FIRST_LINE = re.compile(r"[^\r\n]*")
_DELIMITERS = (",", ";", "\t")


def normalize_text(text: str) -> str:
    return text.lstrip(BOM)


def _detect_delimiter(line: str) -> str:
    counts = {delimiter: line.count(delimiter) for delimiter in _DELIMITERS}
    best = max(_DELIMITERS, key=lambda delimiter: counts[delimiter])
    return best if counts[best] else ","


def _rewrite_cell(cell: str) -> str | None:
    stripped = cell.strip()
    quoted = len(stripped) >= 2 and stripped[0] == stripped[-1] == '"'
    label = stripped[1:-1].strip() if quoted else stripped
    canonical = _LOOKUP.get(label.lower())
    if canonical is None or label == canonical:
        return None
    return f'"{canonical}"' if quoted else canonical


def normalize_csv(text: str) -> str:
    """Strip BOMs and rewrite known participant-export header aliases.

    Only the first line is inspected. Cells that are not known aliases keep
    their exact text, and everything after the header (line ending included)
    is returned untouched.
    """
    text = normalize_text(text)
    header = _FIRST_LINE.match(text).group(0)
    if not header:
        return text
    delimiter = _detect_delimiter(header)
    cells = header.split(delimiter)
    changed = False
    for index, cell in enumerate(cells):
        rewritten = _rewrite_cell(cell)
        if rewritten is not None:
            cells[index] = rewritten
            changed = True
    if not changed:
        return text
    return delimiter.join(cells) + text[len(header):]

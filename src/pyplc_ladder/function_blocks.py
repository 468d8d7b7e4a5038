"""Function block listing, summary analysis and keyword search over a ProgramStore."""

import csv
import io
from typing import Any

from .store import ProgramStore

MAX_LABELS = 10
MAX_INSTRUCTIONS = 20


def _rows(content: str) -> list[list[str]]:
    """Split tab- or comma-delimited text (delimiter chosen for the whole text) into rows."""
    if not content or not content.strip():
        return []
    delimiter = "\t" if "\t" in content else ","
    return [row for row in csv.reader(io.StringIO(content), delimiter=delimiter)]


def parse_labels(content: str) -> list[dict[str, str]]:
    """Label table rows after the header as {name, type, description}."""
    labels: list[dict[str, str]] = []
    for row in _rows(content)[1:]:
        if len(row) < 2 or all(not v.strip() for v in row):
            continue
        labels.append(
            {
                "name": row[0].strip(),
                "type": row[1].strip(),
                "description": row[2].strip() if len(row) > 2 else "",
            }
        )
        if len(labels) >= MAX_LABELS:
            break
    return labels


def parse_program(content: str) -> dict[str, Any]:
    """Program rows after the header as {line, instruction}, plus the total line count."""
    rows = _rows(content)
    if len(rows) <= 1:
        return {"lineCount": 0, "instructions": []}
    instructions: list[dict[str, str]] = []
    for row in rows[1:]:
        if len(row) < 2 or all(not v.strip() for v in row):
            continue
        instructions.append(
            {
                "line": row[0].strip(),
                "instruction": " ".join(v.strip() for v in row[1:] if v.strip()),
            }
        )
        if len(instructions) >= MAX_INSTRUCTIONS:
            break
    return {"lineCount": len(rows) - 1, "instructions": instructions}


def list_function_blocks(store: ProgramStore) -> list[dict[str, Any]]:
    return [
        {
            "name": b.name,
            "safeName": b.safe_name,
            "hasLabel": bool(b.label_content.strip()),
            "hasProgram": bool(b.program_content.strip()),
            "createdAt": b.created_at.isoformat() if b.created_at else None,
            "updatedAt": b.updated_at.isoformat() if b.updated_at else None,
        }
        for b in store.function_blocks
    ]


def analyze_function_block(store: ProgramStore, name: str) -> dict[str, Any] | None:
    """Parsed labels and program summary for one block, or None when no block has that name."""
    block = store.try_get_function_block(name)
    if block is None:
        return None
    return {
        "name": block.name,
        "labels": parse_labels(block.label_content),
        "program": parse_program(block.program_content),
    }


def search_function_blocks(store: ProgramStore, keyword: str) -> list[dict[str, Any]]:
    """Blocks whose name, label text or program text contains keyword (case-insensitive)."""
    if not keyword or not keyword.strip():
        return []
    k = keyword.strip().lower()
    return [
        {
            "name": b.name,
            "safeName": b.safe_name,
            "createdAt": b.created_at.isoformat() if b.created_at else None,
            "updatedAt": b.updated_at.isoformat() if b.updated_at else None,
        }
        for b in store.function_blocks
        if k in b.name.lower() or k in b.label_content.lower() or k in b.program_content.lower()
    ]

"""
Decoder for the Things 3 MCP server, which answers with human-readable text.

Records are separated by a line holding only ``---``. Inside a record each
line is ``Key: value``, except for two continuation sections:

    Notes: first line of the note
    second line, which may contain a colon: like this
    Checklist:
      □ open step
      ☑ finished step

Notes run until a line that starts with a recognized key. A colon line whose
key is not recognized is treated as part of the note.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from partner_mcp.domain.models import Area, ChecklistItem, Project, Task, TaskStatus, ToolResult

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_SEPARATOR = re.compile(r"^[ \t]*---[ \t]*$", re.MULTILINE)

DATE_FORMAT = "%Y-%m-%d"

UNCHECKED_GLYPHS = ("□", "☐")
CHECKED_GLYPHS = ("☑", "✓", "✔")

# Keys the scanner knows. Only some of them map to fields; the rest still end a note.
KNOWN_KEYS = {
    "Title",
    "UUID",
    "Type",
    "Status",
    "List",
    "Notes",
    "Project",
    "Area",
    "Tags",
    "Checklist",
    "Start Date",
    "Deadline",
    "Created",
    "Modified",
    "When",
}


class _Mode(Enum):
    NORMAL = "normal"
    NOTES = "notes"
    CHECKLIST = "checklist"


def _split_key(line: str) -> tuple[str, str] | None:
    key, sep, value = line.partition(":")
    key = key.strip()
    if not sep or not key:
        return None
    return key, value.strip()


def _parse_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def _checklist_item(line: str) -> Optional[ChecklistItem]:
    for glyph in UNCHECKED_GLYPHS:
        if line.startswith(glyph):
            return ChecklistItem(title=line[len(glyph):].strip(), status=TaskStatus.INCOMPLETE)
    for glyph in CHECKED_GLYPHS:
        if line.startswith(glyph):
            return ChecklistItem(title=line[len(glyph):].strip(), status=TaskStatus.COMPLETED)
    return None


def scan_block(block: str) -> Dict[str, Any]:
    """
    Scan one record into a field mapping (Task field names).

    Never raises on odd input; unknown keys and unparseable values are skipped.
    """
    fields: Dict[str, Any] = {}
    notes: List[str] = []
    checklist: List[ChecklistItem] = []
    mode = _Mode.NORMAL

    for raw in block.splitlines():
        line = raw.strip()

        if mode is _Mode.CHECKLIST:
            item = _checklist_item(line)
            if item is not None:
                checklist.append(item)
                continue
            if line and ":" not in line:
                continue
            mode = _Mode.NORMAL

        kv = _split_key(line)

        if mode is _Mode.NOTES:
            if kv is None or kv[0] not in KNOWN_KEYS:
                notes.append(line)
                continue
            mode = _Mode.NORMAL

        if kv is None:
            continue
        key, value = kv

        if key == "Title":
            fields["title"] = value
        elif key == "UUID":
            fields["uuid"] = value
        elif key == "Status":
            # normalised by the model; unknown values fall back to incomplete
            fields["status"] = value
        elif key == "Notes":
            mode = _Mode.NOTES
            notes = [value]
        elif key == "Project":
            fields["project_title"] = value or None
        elif key == "Area":
            fields["area_title"] = value or None
        elif key == "Tags":
            tags = [t.strip() for t in value.split(",") if t.strip()]
            if tags:
                fields["tags"] = tags
        elif key == "Checklist":
            mode = _Mode.CHECKLIST
        elif key == "Start Date":
            d = _parse_date(value)
            if d is not None:
                fields["start_date"] = d
        elif key == "Deadline":
            d = _parse_date(value)
            if d is not None:
                fields["deadline"] = d

    note_text = "\n".join(notes).strip()
    if note_text:
        fields["notes"] = note_text
    if checklist:
        fields["checklist_items"] = checklist
    return fields


def split_blocks(text: str) -> List[str]:
    return [b.strip() for b in _SEPARATOR.split(text) if b.strip()]


def _build(model: Type[M], fields: Dict[str, Any]) -> Optional[M]:
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        logger.debug("dropping %s record: %s", model.__name__, e.errors()[0].get("msg") if e.errors() else e)
        return None


def parse_task_block(block: str) -> Optional[Task]:
    """One text record -> Task, or None when it has no title."""
    return _build(Task, scan_block(block))


def parse_tasks(result: ToolResult) -> List[Task]:
    tasks: List[Task] = []
    for text in result.texts():
        for block in split_blocks(text):
            task = parse_task_block(block)
            if task is not None:
                tasks.append(task)
    return tasks


def _json_records(text: str) -> Optional[List[Any]]:
    s = text.strip()
    if not s or s[0] not in "[{":
        return None
    try:
        data = json.loads(s)
    except (ValueError, RecursionError):
        return None
    if isinstance(data, dict):
        for key in ("projects", "areas", "items"):
            if isinstance(data.get(key), list):
                return data[key]
        return None
    return data if isinstance(data, list) else None


def _parse_records(result: ToolResult, model: Type[M]) -> List[M]:
    out: List[M] = []
    for text in result.texts():
        records = _json_records(text)
        if records is not None:
            for r in records:
                if isinstance(r, dict):
                    rec = _build(model, r)
                    if rec is not None:
                        out.append(rec)
            continue
        for block in split_blocks(text):
            rec = _build(model, scan_block(block))
            if rec is not None:
                out.append(rec)
    return out


def parse_projects(result: ToolResult) -> List[Project]:
    """Projects arrive as a JSON array on some server versions and as text blocks on others."""
    return _parse_records(result, Project)


def parse_areas(result: ToolResult) -> List[Area]:
    return _parse_records(result, Area)

"""Object counts and issue-free rollup per object type."""
from __future__ import annotations
import re
from dataclasses import dataclass, field

from tsql_compass.capture.records import CaptureRecord
from tsql_compass.status import ISSUE_FREE_STATUSES, Status

ROLLUP_TYPES = ("PROCEDURE", "FUNCTION", "TRIGGER", "TABLE", "VIEW")

_CREATE_ITEM = re.compile(r"^CREATE (.*)$")
_CONSTRAINT_ITEM = re.compile(r"^Constraint (.*?)(\(.*)?$")
_NO_COUNT_CONSTRAINTS = ("constraint column DEFAULT", "constraint PRIMARY KEY/UNIQUE")


def object_type_of_item(item: str) -> str:
    """Object type counted for a CREATE or Constraint item, or ''.

    'CREATE PROCEDURE' -> 'PROCEDURE'
    'CREATE TYPE' -> 'user-defined datatype (UDD)'
    'Constraint FOREIGN KEY, ON DELETE CASCADE' -> 'constraint FOREIGN KEY'
    """
    m = _CREATE_ITEM.match(item)
    if m:
        obj_type = m.group(1)
        if obj_type.startswith("TYPE"):
            obj_type = obj_type.replace("TYPE", "user-defined datatype (UDD)", 1)
        elif obj_type.startswith("INDEX"):
            obj_type = obj_type.replace("INDEX", "index", 1)
        elif obj_type.startswith("DATABASE"):
            obj_type = "DATABASE"
        elif obj_type.startswith("PROCEDURE"):
            obj_type = "PROCEDURE"
        elif obj_type.startswith("TRIGGER,"):
            obj_type = "TRIGGER"
        return obj_type.strip()

    m = _CONSTRAINT_ITEM.match(item)
    if m:
        obj_type = m.group(1).split(",", 1)[0].strip()
        return f"constraint {obj_type}" if obj_type else ""
    return ""


def object_key_of_context(context: str) -> str:
    """Object name part of a context string ('PROCEDURE DB1.DBO.P' -> 'DB1.DBO.P')."""
    return context.upper().partition(" ")[2]


def _table_of_column_record(record: CaptureRecord) -> str:
    for ctx in (record.context, record.sub_context):
        if ctx.startswith("TABLE "):
            return ctx[len("TABLE "):]
    return ""


@dataclass
class ObjectTypeCount:
    obj_type: str
    count: int
    lines: int = 0
    columns: int = 0
    no_issues: int | None = None


@dataclass
class ObjectRollup:
    """Counts objects by type and tracks which objects have issues."""
    type_counts: dict[str, int] = field(default_factory=dict)
    type_lines: dict[str, int] = field(default_factory=dict)
    type_columns: dict[str, int] = field(default_factory=dict)
    objects: dict[str, str] = field(default_factory=dict)
    issue_counts: dict[str, int] = field(default_factory=dict)
    lines_in_objects: int = 0

    def add_record(self, record: CaptureRecord) -> None:
        obj_type = object_type_of_item(record.item)
        if obj_type and record.status is not Status.IGNORED and obj_type not in _NO_COUNT_CONSTRAINTS:
            self.type_counts[obj_type] = self.type_counts.get(obj_type, 0) + 1
            lines = int(record.misc) if record.misc.isdigit() else 0
            self.type_lines[obj_type] = self.type_lines.get(obj_type, 0) + lines
            self.lines_in_objects += lines
            if record.item.startswith("CREATE ") and obj_type in ROLLUP_TYPES:
                self.objects[record.item_detail.upper()] = obj_type

        if record.item.endswith(" column") or record.item.startswith("Computed column"):
            table = _table_of_column_record(record)
            if table:
                table_type = "TABLE (temporary table)" if table.startswith("#") else "TABLE"
                self.type_columns[table_type] = self.type_columns.get(table_type, 0) + 1

        if record.status not in ISSUE_FREE_STATUSES:
            key = object_key_of_context(record.context)
            self.issue_counts[key] = self.issue_counts.get(key, 0) + 1

    def has_issues(self, object_name: str) -> bool:
        return self.issue_counts.get(object_name.upper(), 0) > 0

    def issue_free_counts(self) -> dict[str, tuple[int, int]]:
        """Per rolled-up type: (objects without issues, objects with issues)."""
        result: dict[str, tuple[int, int]] = {}
        for name, obj_type in self.objects.items():
            clean, dirty = result.get(obj_type, (0, 0))
            if self.has_issues(name):
                dirty += 1
            else:
                clean += 1
            result[obj_type] = (clean, dirty)
        return result

    def rows(self) -> list[ObjectTypeCount]:
        issue_free = self.issue_free_counts()
        rows = []
        for obj_type in sorted(self.type_counts):
            rows.append(ObjectTypeCount(
                obj_type=obj_type,
                count=self.type_counts[obj_type],
                lines=self.type_lines.get(obj_type, 0),
                columns=self.type_columns.get(obj_type, 0),
                no_issues=issue_free[obj_type][0] if obj_type in issue_free else None,
            ))
        return rows

"""Reading T-SQL scripts and splitting them into batches."""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from tsql_compass.layout import detect_encoding

logger = logging.getLogger(__name__)

_GO_LINE = re.compile(r"^\s*GO(?:\s+(\d+))?\s*(?:--.*)?$", re.IGNORECASE)


@dataclass
class Batch:
    """A batch of T-SQL between GO separators."""
    batch_nr: int
    start_line: int
    text: str

    @property
    def nr_lines(self) -> int:
        return self.text.count("\n") + 1

    def line_of(self, offset: int) -> int:
        """Batch-relative line number (1-based) of a character offset."""
        return self.text.count("\n", 0, offset) + 1


def read_sql_file(path: str | Path, encoding: str | None = None) -> tuple[str, str]:
    """Read a script, detecting UTF-8/16/32 from a byte-order mark.

    Returns:
        (text, encoding name)
    """
    raw = Path(path).read_bytes()
    encoding = encoding or detect_encoding(raw)
    text = raw.decode(encoding)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text, encoding


def mask_sql(text: str, strings: bool = True) -> str:
    """Blank out comments (and string literals) keeping offsets and newlines.

    The result has the same length as text, so offsets of regex matches
    map straight back to the original.
    """
    out = list(text)
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if c == "-" and nxt == "-":
            end = text.find("\n", i)
            end = n if end == -1 else end
            for j in range(i, end):
                out[j] = " "
            i = end
        elif c == "/" and nxt == "*":
            # T-SQL block comments nest
            depth = 0
            j = i
            while j < n:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                    if depth == 0:
                        break
                else:
                    j += 1
            for k in range(i, min(j, n)):
                if out[k] != "\n":
                    out[k] = " "
            i = j
        elif c == "'" or (c in "Nn" and nxt == "'" and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_"))):
            start = i + 1 if c == "'" else i + 2
            j = start
            while j < n:
                if text[j] == "'":
                    if j + 1 < n and text[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            if strings:
                for k in range(start, min(j, n)):
                    if out[k] != "\n":
                        out[k] = " "
            i = j + 1
        elif c == "[":
            end = text.find("]", i + 1)
            i = n if end == -1 else end + 1
        elif c == '"':
            end = text.find('"', i + 1)
            i = n if end == -1 else end + 1
        else:
            i += 1
    return "".join(out)


def split_batches(text: str) -> list[Batch]:
    """Split a script on GO lines.

    GO inside a block comment does not end a batch. 'GO n' repeats the batch
    when executed but is analyzed once. Batches with no SQL are dropped.
    """
    masked_lines = mask_sql(text, strings=False).split("\n")
    lines = text.split("\n")

    batches = []
    current: list[str] = []
    start = 1
    for line_nr, (line, masked) in enumerate(zip(lines, masked_lines), start=1):
        if _GO_LINE.match(masked) and masked.strip():
            if any(l.strip() for l in current):
                batches.append(Batch(len(batches) + 1, start, "\n".join(current)))
            current = []
            start = line_nr + 1
            continue
        current.append(line)

    if any(l.strip() for l in current):
        batches.append(Batch(len(batches) + 1, start, "\n".join(current)))
    logger.debug(f"Split {len(lines)} lines into {len(batches)} batches")
    return batches

"""Separator masking for ';'-delimited record files.

Symbol table and capture files store one record per line with fields joined
by a separator. A field value containing the separator is masked with a
private token before writing. The leading text shared by the mask token and
the last-resort token is itself rewritten to the last-resort token, so no
value text can run into a token and unmasking a line is unambiguous.
"""
from __future__ import annotations
import os
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class FieldCodec:
    """Reversible separator masking for one file format."""
    separator: str
    mask_token: str
    last_resort_token: str

    def __post_init__(self) -> None:
        if not self.escape_prefix or self.escape_prefix in (self.mask_token, self.last_resort_token):
            raise ValueError("Mask tokens must share a leading prefix and differ after it")
        if self.separator in self.mask_token + self.last_resort_token:
            raise ValueError("Mask tokens must not contain the separator")

    @property
    def escape_prefix(self) -> str:
        return os.path.commonprefix([self.mask_token, self.last_resort_token])

    def mask(self, value: str) -> str:
        """Make a value safe to embed as a single field."""
        if self.escape_prefix in value:
            value = value.replace(self.escape_prefix, self.last_resort_token)
        return value.replace(self.separator, self.mask_token)

    def unmask(self, value: str) -> str:
        """Restore a value written by mask()."""
        if self.escape_prefix not in value:
            return value
        tokens = {self.mask_token: self.separator, self.last_resort_token: self.escape_prefix}
        return re.sub("|".join(map(re.escape, tokens)), lambda m: tokens[m.group()], value)

    def join(self, fields: list[str]) -> str:
        return self.separator.join(self.mask(f) for f in fields)

    def split(self, line: str) -> list[str]:
        return [self.unmask(f) for f in line.split(self.separator)]


SYMTAB_CODEC = FieldCodec(
    separator=";",
    mask_token="BBF_SEPARATOR~MASK~BBF",
    last_resort_token="BBF_SEPARATOR~MASK~LAST~RESORT~BBF",
)

CAPTURE_CODEC = FieldCodec(
    separator=";",
    mask_token="BBF_SEPARATOR_MARKER_BBF_",
    last_resort_token="BBF_SEPARATOR_MARKER_LAST_RESORT_BBF_",
)

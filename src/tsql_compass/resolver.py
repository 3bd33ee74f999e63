"""Name resolution against the current database and object context.

A resolved name is the uppercase, fully qualified form of an identifier as
SQL Server would bind it at the point of reference: missing database parts
come from the last USE, missing schema parts from the enclosing object (or
dbo). Temporary tables (#name) are never qualified.
"""
from __future__ import annotations
import logging

from tsql_compass.identifiers import Normalizer, db_name_of, schema_name_of

logger = logging.getLogger(__name__)

BATCH_CONTEXT = "T-SQL batch"
DEFAULT_SCHEMA = "dbo"


class NameResolver:
    """Tracks the current database and object context of an analysis pass."""

    def __init__(self, normalizer: Normalizer | None = None):
        self.normalizer = normalizer or Normalizer()
        self.current_db = ""
        self.object_type = BATCH_CONTEXT
        self.object_name = ""
        self.sub_object_type = ""
        self.sub_object_name = ""

    def normalize(self, name: str, options: str = "") -> str:
        return self.normalizer.normalize(name, options)

    def set_current_db(self, db_name: str) -> None:
        self.current_db = self.normalize(db_name)
        logger.debug(f"current database: {self.current_db}")

    def clear_context(self) -> None:
        """Return to batch level, outside any object."""
        self.object_type = BATCH_CONTEXT
        self.object_name = ""
        self.reset_sub_context()

    def set_context(self, obj_type: str, obj_name: str) -> None:
        """Enter an object definition.

        A table declared inside a procedure or function body (a table
        variable or temp table) becomes the sub-context so that the
        enclosing object stays the context.
        """
        obj_type = obj_type.upper()
        if obj_type == "TABLE" and self.object_type != BATCH_CONTEXT:
            self.sub_object_type = obj_type
            self.sub_object_name = obj_name
            return
        self.object_type = obj_type
        self.object_name = self.resolve_name(obj_name) if obj_name else ""
        self.reset_sub_context()

    def end_table(self) -> None:
        """Leave a table definition at the end of its column list."""
        if self.sub_object_type:
            self.reset_sub_context()
        else:
            self.clear_context()

    def reset_sub_context(self) -> None:
        self.sub_object_type = ""
        self.sub_object_name = ""

    @property
    def in_batch_context(self) -> bool:
        return self.object_type == BATCH_CONTEXT

    @property
    def context(self) -> str:
        """Context string recorded on captured items, e.g. 'PROCEDURE DB1.DBO.P1'."""
        if self.in_batch_context:
            return BATCH_CONTEXT
        return f"{self.object_type} {self.object_name}"

    @property
    def sub_context(self) -> str:
        if not self.sub_object_type:
            return ""
        return f"{self.sub_object_type} {self.sub_object_name}"

    def resolve_name(self, name: str) -> str:
        """Fully qualify and canonicalize a name.

        Examples (current database DB1, batch context):
            tbl          -> DB1.DBO.TBL
            sales.tbl    -> DB1.SALES.TBL
            db2..tbl     -> DB2..TBL
            #tmp         -> #TMP
        Without a current database the database part is left empty
        ('.DBO.TBL'). Resolving a resolved name returns it unchanged.
        """
        resolved = self.normalize(name.upper())
        if resolved.startswith("#"):
            return resolved

        schema = schema_name_of(resolved)
        db = db_name_of(resolved)
        if not schema and not db:
            if not self.in_batch_context:
                schema = schema_name_of(self.object_name)
            if not schema:
                schema = DEFAULT_SCHEMA
            resolved = f"{schema}.{resolved}"
        if not db:
            resolved = f"{self.current_db}.{resolved}"
        return resolved.upper()

"""Rule table loader for T-SQL feature classification."""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any
import hashlib
import re
import yaml

from tsql_compass.errors import ConfigurationError
from tsql_compass.status import Status

DEFAULT_RULES_PATH = Path(__file__).parents[1] / "rules" / "tsql_features.yaml"


@dataclass
class PatternRule:
    """A construct recognized by a regular expression."""
    id: str
    item: str
    group: str
    status: Status
    pattern: re.Pattern
    detail_group: int | None = None


@dataclass
class ObjectRule:
    """How CREATE statements of one object kind are reported."""
    kind: str
    group: str
    status: Status


@dataclass
class FeatureRuleset:
    """Complete classification rule table."""
    version: str
    objects: dict[str, ObjectRule]
    datatype_group: str
    udd_group: str
    datatype_default: Status
    datatypes: dict[str, Status]
    xml_group: str
    xml_methods: dict[str, Status]
    hierarchyid_group: str
    hierarchyid_methods: dict[str, Status]
    udf_group: str
    udf_status: Status
    constraint_group: str
    patterns: list[PatternRule]
    content_hash: str
    unknown_object: ObjectRule | None = None

    def object_rule(self, kind: str) -> ObjectRule:
        rule = self.objects.get(kind.upper())
        if rule is not None:
            return rule
        return ObjectRule(kind.upper(), self.unknown_object.group, self.unknown_object.status)

    def datatype_status(self, type_name: str) -> Status:
        return self.datatypes.get(type_name.upper(), self.datatype_default)


def _status(value: str, where: str) -> Status:
    try:
        return Status.from_name(value)
    except ValueError:
        raise ConfigurationError(f"Invalid status '{value}' in rule table ({where})")


def _parse_pattern(data: dict[str, Any]) -> PatternRule:
    rule_id = data.get("id", "?")
    try:
        pattern = re.compile(data["pattern"], re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid pattern in rule '{rule_id}': {e}")
    except KeyError as e:
        raise ConfigurationError(f"Rule '{rule_id}' lacks {e}")
    return PatternRule(
        id=rule_id,
        item=data["item"],
        group=data["group"],
        status=_status(data.get("status", "SUPPORTED"), rule_id),
        pattern=pattern,
        detail_group=data.get("detail_group"),
    )


def load_feature_rules(rules_path: str | Path | None = None) -> FeatureRuleset:
    """Load the classification rule table from YAML.

    Args:
        rules_path: Path to a YAML rule table, or None for the bundled one

    Returns:
        Parsed FeatureRuleset
    """
    path = Path(rules_path) if rules_path else DEFAULT_RULES_PATH
    if not path.exists():
        raise ConfigurationError(f"Rule table not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        raw_data = f.read()
        data = yaml.safe_load(raw_data)

    # Content hash identifies the rule table in logs
    content_hash = hashlib.sha256(raw_data.encode()).hexdigest()[:16]

    objects_data = data.get("objects", {})
    objects = {
        kind.upper(): ObjectRule(kind.upper(), entry["group"], _status(entry.get("status", "SUPPORTED"), kind))
        for kind, entry in objects_data.get("kinds", {}).items()
    }
    unknown = objects_data.get("unknown", {"group": "Miscellaneous SQL Features", "status": "REVIEWMANUALLY"})

    datatypes = data.get("datatypes", {})
    xml = data.get("xml", {})
    hierarchyid = data.get("hierarchyid", {})
    udf = data.get("udf_calls", {})

    return FeatureRuleset(
        version=str(data.get("version", "1")),
        objects=objects,
        unknown_object=ObjectRule("", unknown["group"], _status(unknown.get("status", "REVIEWMANUALLY"), "unknown")),
        datatype_group=datatypes.get("group", "Datatypes"),
        udd_group=datatypes.get("udd_group", "User-Defined Datatypes"),
        datatype_default=_status(datatypes.get("default_status", "SUPPORTED"), "datatypes"),
        datatypes={k.upper(): _status(v, k) for k, v in datatypes.get("statuses", {}).items()},
        xml_group=xml.get("group", "XML"),
        xml_methods={k.upper(): _status(v, k) for k, v in xml.get("methods", {}).items()},
        hierarchyid_group=hierarchyid.get("group", "HIERARCHYID"),
        hierarchyid_methods={k.upper(): _status(v, k) for k, v in hierarchyid.get("methods", {}).items()},
        udf_group=udf.get("group", "Functions"),
        udf_status=_status(udf.get("status", "SUPPORTED"), "udf_calls"),
        constraint_group=data.get("constraints", {}).get("group", "Constraints"),
        patterns=[_parse_pattern(p) for p in data.get("patterns", [])],
        content_hash=content_hash,
    )

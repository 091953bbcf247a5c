#!/usr/bin/env python3
"""
idmatch - identifier naming-convention rule

High-level goals:
- Classify each identifier occurrence by its syntactic role
- Decide, per role, whether the spelling must match a configured pattern
- Emit a violation when it does not

The rule itself never parses or walks source. A host engine hands it one
occurrence at a time. The ESTree walker, YAML loader and CLI further down are a
small host so the rule can also be run on its own over ESTree JSON dumps.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Optional, Tuple, Any, Iterable, Iterator
import argparse
import json
import re
import sys

import yaml


TOOL_NAME = "idmatch"
TOOL_VERSION = "0.1.0"
RULE_ID = "id-match"

DEFAULT_PATTERN = "^.+$"
MESSAGE_TEMPLATE = "Identifier '{name}' does not match the pattern '{pattern}'."


# ============================================================
# ================= SOURCE LOCATION & NODES ==================
# ============================================================

@dataclass(frozen=True)
class SourceLocation:
    file: Optional[str]
    line: int
    column: int


class NodeKind(Enum):
    """
    Ancestor kinds the rule distinguishes. Everything else is OTHER.
    """
    MEMBER_ACCESS = "MemberExpression"
    PROPERTY = "Property"
    CALL = "CallExpression"
    NEW = "NewExpression"
    ASSIGNMENT = "AssignmentExpression"
    FUNCTION_DECLARATION = "FunctionDeclaration"
    VARIABLE_DECLARATOR = "VariableDeclarator"
    OTHER = "Other"

    @classmethod
    def from_node_type(cls, node_type: Optional[str]) -> "NodeKind":
        for kind in cls:
            if kind is not cls.OTHER and kind.value == node_type:
                return kind
        return cls.OTHER


INVOCATION_KINDS = frozenset({NodeKind.CALL, NodeKind.NEW})
DECLARATION_KINDS = frozenset({NodeKind.FUNCTION_DECLARATION, NodeKind.VARIABLE_DECLARATOR})


@dataclass(frozen=True)
class AssignmentShape:
    """
    The parts of an assignment the classifier looks at: whether each side is
    a member access, and the property name on the left one.
    """
    left_is_member: bool = False
    left_property_name: Optional[str] = None
    right_is_member: bool = False


@dataclass(frozen=True)
class IdentifierOccurrence:
    name: str
    parent_kind: NodeKind
    grandparent_kind: Optional[NodeKind] = None

    # Only meaningful when parent_kind is MEMBER_ACCESS. member_property_name
    # is informational; classification compares the assignment's left
    # property against `name`.
    is_member_object: bool = False
    member_property_name: Optional[str] = None

    # Shape of the effective parent when that is an assignment
    assignment: Optional[AssignmentShape] = None

    location: Optional[SourceLocation] = None

    @property
    def effective_parent_kind(self) -> NodeKind:
        if self.parent_kind is NodeKind.MEMBER_ACCESS:
            return self.grandparent_kind or NodeKind.OTHER
        return self.parent_kind


# ============================================================
# ===================== CONFIGURATION ========================
# ============================================================

class ConfigurationError(Exception):
    """Raised at activation when the rule options cannot be used."""


@dataclass(frozen=True)
class RuleConfig:
    pattern_source: str
    regexp: re.Pattern[str]
    check_properties: bool = False
    only_declarations: bool = False
    severity: str = "error"

    def is_invalid(self, name: str) -> bool:
        """True when the pattern finds no match anywhere in `name`."""
        return self.regexp.search(name) is None


def activate(
    pattern: Optional[str] = None,
    options: Optional[Dict[str, Any]] = None,
    severity: str = "error",
) -> RuleConfig:
    """
    Build the immutable configuration for one run from the rule's ordered
    options (pattern string, then the options mapping).
    """
    if pattern is None or pattern == "":
        pattern = DEFAULT_PATTERN
    if not isinstance(pattern, str):
        raise ConfigurationError(f"pattern must be a string, got {type(pattern).__name__}")
    try:
        # \w, \d and \b are ASCII-only, as in an ECMAScript RegExp without flags
        regexp = re.compile(pattern, re.ASCII)
    except re.error as exc:
        raise ConfigurationError(f"invalid pattern '{pattern}': {exc}") from exc

    if options is None:
        options = {}
    if not isinstance(options, dict):
        raise ConfigurationError(f"options must be a mapping, got {type(options).__name__}")

    return RuleConfig(
        pattern_source=pattern,
        regexp=regexp,
        check_properties=bool(options.get("properties")),
        only_declarations=bool(options.get("onlyDeclarations")),
        severity=str(severity),
    )


# ============================================================
# ==================== CLASSIFICATION ========================
# ============================================================

class Role(Enum):
    MEMBER_OBJECT = "member_object"
    MEMBER_PROPERTY_ASSIGN_TARGET = "member_property_assign_target"
    MEMBER_OTHER = "member_other"
    PROPERTY_KEY = "property_key"
    GENERAL_REFERENCE = "general_reference"


def _is_member_assign_target(occurrence: IdentifierOccurrence) -> bool:
    if occurrence.effective_parent_kind is not NodeKind.ASSIGNMENT:
        return False
    shape = occurrence.assignment or AssignmentShape()
    if not shape.right_is_member:
        return True
    return shape.left_is_member and shape.left_property_name == occurrence.name


def classify(occurrence: IdentifierOccurrence) -> Tuple[Role, NodeKind, bool]:
    """
    Return (role, effective parent kind, is_declaration) for one occurrence.
    """
    effective = occurrence.effective_parent_kind
    is_declaration = effective in DECLARATION_KINDS

    if occurrence.parent_kind is NodeKind.MEMBER_ACCESS:
        if occurrence.is_member_object:
            role = Role.MEMBER_OBJECT
        elif _is_member_assign_target(occurrence):
            role = Role.MEMBER_PROPERTY_ASSIGN_TARGET
        else:
            role = Role.MEMBER_OTHER
    elif occurrence.parent_kind is NodeKind.PROPERTY:
        role = Role.PROPERTY_KEY
    else:
        role = Role.GENERAL_REFERENCE

    return role, effective, is_declaration


# ============================================================
# ==================== REPORT DECISION =======================
# ============================================================

@dataclass(frozen=True)
class Decision:
    role: Role
    effective_parent_kind: NodeKind
    is_declaration: bool
    report: bool


def _invalid_outside_invocation(name: str, effective_parent_kind: NodeKind, config: RuleConfig) -> bool:
    return effective_parent_kind not in INVOCATION_KINDS and config.is_invalid(name)


def should_report(
    role: Role,
    name: str,
    effective_parent_kind: NodeKind,
    is_declaration: bool,
    config: RuleConfig,
) -> bool:
    if role is Role.MEMBER_OTHER:
        return False

    if role is Role.MEMBER_OBJECT:
        # Base objects are checked even when the access is being called.
        return config.check_properties and config.is_invalid(name)

    if role in (Role.MEMBER_PROPERTY_ASSIGN_TARGET, Role.PROPERTY_KEY):
        if not config.check_properties:
            return False
        return _invalid_outside_invocation(name, effective_parent_kind, config)

    if config.only_declarations and not is_declaration:
        return False
    return _invalid_outside_invocation(name, effective_parent_kind, config)


def evaluate(occurrence: IdentifierOccurrence, config: RuleConfig) -> Decision:
    role, effective, is_declaration = classify(occurrence)
    return Decision(
        role=role,
        effective_parent_kind=effective,
        is_declaration=is_declaration,
        report=should_report(role, occurrence.name, effective, is_declaration, config),
    )


# ============================================================
# ======================== REPORTER ==========================
# ============================================================

@dataclass
class Violation:
    """
    One reported occurrence, ready to be serialized.
    """
    rule_id: str
    severity: str
    message: str

    location: Dict[str, Any]  # {file, line, column}

    extras: Dict[str, Any] = field(default_factory=dict)


def report(occurrence: IdentifierOccurrence, config: RuleConfig) -> Violation:
    loc = occurrence.location
    return Violation(
        rule_id=RULE_ID,
        severity=config.severity,
        message=MESSAGE_TEMPLATE.format(name=occurrence.name, pattern=config.pattern_source),
        location={
            "file": loc.file if loc else None,
            "line": loc.line if loc else None,
            "column": loc.column if loc else None,
        },
        extras={"name": occurrence.name, "pattern": config.pattern_source},
    )


class IdMatchRule:
    """
    Per-occurrence entry point handed to a traversal engine. Holds nothing but
    the configuration it was activated with.
    """

    def __init__(self, config: RuleConfig) -> None:
        self.config = config

    def check(self, occurrence: IdentifierOccurrence) -> Optional[Violation]:
        if evaluate(occurrence, self.config).report:
            return report(occurrence, self.config)
        return None

    def check_all(self, occurrences: Iterable[IdentifierOccurrence]) -> List[Violation]:
        violations: List[Violation] = []
        for occurrence in occurrences:
            violation = self.check(occurrence)
            if violation is not None:
                violations.append(violation)
        return violations


# ============================================================
# ===================== ESTREE WALKER ========================
# ============================================================

_SKIPPED_KEYS = frozenset({"loc", "range", "parent", "start", "end"})


def _node_type(node: Any) -> Optional[str]:
    if isinstance(node, dict):
        value = node.get("type")
        return value if isinstance(value, str) else None
    return None


def _property_name(member: Any) -> Optional[str]:
    if not isinstance(member, dict):
        return None
    prop = member.get("property")
    if isinstance(prop, dict):
        return prop.get("name")
    return None


def _assignment_shape(node: Dict[str, Any]) -> AssignmentShape:
    left = node.get("left")
    return AssignmentShape(
        left_is_member=_node_type(left) == NodeKind.MEMBER_ACCESS.value,
        left_property_name=_property_name(left) if _node_type(left) == NodeKind.MEMBER_ACCESS.value else None,
        right_is_member=_node_type(node.get("right")) == NodeKind.MEMBER_ACCESS.value,
    )


def _location_of(node: Dict[str, Any], file: Optional[str]) -> Optional[SourceLocation]:
    loc = node.get("loc")
    if not isinstance(loc, dict) or not isinstance(loc.get("start"), dict):
        return None
    start = loc["start"]
    line = start.get("line")
    column = start.get("column")
    if not isinstance(line, int) or not isinstance(column, int):
        return None
    return SourceLocation(file=file, line=line, column=column)


def _children(node: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    for key, value in node.items():
        if key in _SKIPPED_KEYS:
            continue
        if isinstance(value, dict) and "type" in value:
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict) and "type" in item:
                    yield item


def _occurrence_for(
    node: Dict[str, Any],
    parent: Dict[str, Any],
    grandparent: Optional[Dict[str, Any]],
    file: Optional[str],
) -> IdentifierOccurrence:
    parent_kind = NodeKind.from_node_type(_node_type(parent))
    grandparent_kind = NodeKind.from_node_type(_node_type(grandparent)) if grandparent is not None else None

    is_member_object = False
    member_property_name = None
    effective = parent
    if parent_kind is NodeKind.MEMBER_ACCESS:
        is_member_object = parent.get("object") is node
        member_property_name = _property_name(parent)
        effective = grandparent

    assignment = None
    if effective is not None and _node_type(effective) == NodeKind.ASSIGNMENT.value:
        assignment = _assignment_shape(effective)

    return IdentifierOccurrence(
        name=str(node.get("name", "")),
        parent_kind=parent_kind,
        grandparent_kind=grandparent_kind,
        is_member_object=is_member_object,
        member_property_name=member_property_name,
        assignment=assignment,
        location=_location_of(node, file),
    )


def iter_identifier_occurrences(tree: Dict[str, Any], file: Optional[str] = None) -> Iterator[IdentifierOccurrence]:
    """
    Depth-first walk over an ESTree JSON tree, yielding one occurrence per
    Identifier node in source order. A root Identifier has no parent and is
    not yielded.
    """
    # (node, parent, grandparent); children pushed reversed to keep source order
    stack: List[Tuple[Dict[str, Any], Optional[Dict[str, Any]], Optional[Dict[str, Any]]]] = [(tree, None, None)]
    while stack:
        node, parent, grandparent = stack.pop()
        if _node_type(node) == "Identifier" and parent is not None:
            yield _occurrence_for(node, parent, grandparent, file)
        for child in reversed(list(_children(node))):
            stack.append((child, node, parent))


# ============================================================
# =================== YAML CONFIG LOADING ====================
# ============================================================

def _config_from_document(doc: Any, origin: str) -> RuleConfig:
    if doc is None:
        return activate()
    if isinstance(doc, dict) and RULE_ID in doc:
        doc = doc[RULE_ID]

    if isinstance(doc, list):
        # Ordered form, as the rule schema declares it: [pattern, options]
        pattern = doc[0] if len(doc) > 0 else None
        options = doc[1] if len(doc) > 1 else None
        return activate(pattern, options)

    if not isinstance(doc, dict):
        raise ConfigurationError(f"{origin}: expected a mapping or a list, got {type(doc).__name__}")

    return activate(
        doc.get("pattern"),
        doc.get("options"),
        severity=doc.get("severity") or "error",
    )


def load_config_from_yaml(path: Optional[str]) -> RuleConfig:
    """
    Load the rule configuration from a YAML file. A missing or unreadable file
    falls back to the default configuration with a notice on stderr; a bad
    pattern still raises ConfigurationError.
    """
    if not path:
        return activate()

    try:
        with open(path, "r", encoding="utf-8") as handle:
            doc = yaml.safe_load(handle)
    except FileNotFoundError:
        sys.stderr.write(f"[idmatch] Config file not found: {path}; using defaults.\n")
        return activate()
    except OSError as exc:
        sys.stderr.write(f"[idmatch] Could not read config file {path}: {exc}; using defaults.\n")
        return activate()
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path}: invalid YAML: {exc}") from exc

    return _config_from_document(doc, path)


def apply_overrides(
    config: RuleConfig,
    pattern: Optional[str] = None,
    properties: Optional[bool] = None,
    only_declarations: Optional[bool] = None,
) -> RuleConfig:
    """Re-activate with command-line values layered over a loaded config."""
    return activate(
        pattern if pattern is not None else config.pattern_source,
        {
            "properties": config.check_properties if properties is None else properties,
            "onlyDeclarations": config.only_declarations if only_declarations is None else only_declarations,
        },
        severity=config.severity,
    )


# ============================================================
# ==================== VIOLATION OUTPUT ======================
# ============================================================

def violation_to_json_obj(v: Violation) -> Dict[str, Any]:
    return {
        "rule_id": v.rule_id,
        "severity": v.severity,
        "message": v.message,
        "location": v.location,
        "extras": v.extras,
        "tool": TOOL_NAME,
        "version": TOOL_VERSION,
    }


def emit_violations_json(violations: List[Violation], out: Optional[str] = None) -> None:
    """
    Serialize all violations to JSON (list of violation objects).
    """
    as_json = [violation_to_json_obj(v) for v in violations]
    text = json.dumps(as_json, indent=2, sort_keys=False)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)


def _load_tree(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            tree = json.load(handle)
    except FileNotFoundError:
        sys.stderr.write(f"[idmatch] Input file not found: {path}\n")
        return None
    except OSError as exc:
        sys.stderr.write(f"[idmatch] Could not read input file {path}: {exc}\n")
        return None
    except json.JSONDecodeError as exc:
        sys.stderr.write(f"[idmatch] {path} is not valid JSON: {exc}\n")
        return None

    if not isinstance(tree, dict):
        sys.stderr.write(f"[idmatch] {path} does not hold an ESTree node; skipping.\n")
        return None
    return tree


# ============================================================
# ============================ CLI ===========================
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.
      idmatch check --config idmatch.yaml tree1.json tree2.json ...

    Each input is an ESTree JSON dump produced by an external parser.
    """
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="idmatch: require identifiers to match a regular expression"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check_p = subparsers.add_parser(
        "check",
        help="Check identifiers in one or more ESTree JSON files and emit JSON violations."
    )
    check_p.add_argument("--config", metavar="CONFIG_YAML", help="YAML rule configuration.")
    check_p.add_argument("--pattern", help="Naming pattern; overrides the config file.")
    check_p.add_argument(
        "--properties",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Check property names (--no-properties turns it off); overrides the config file.",
    )
    check_p.add_argument(
        "--only-declarations",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Only check identifiers at declaration sites; overrides the config file.",
    )
    check_p.add_argument(
        "--out",
        metavar="OUT_JSON",
        help="Write violations to this JSON file instead of stdout.",
    )
    check_p.add_argument(
        "--fail-on-violation",
        action="store_true",
        help="Exit with status 1 when any violation is reported.",
    )
    check_p.add_argument("files", nargs="+", help="ESTree JSON files to check.")

    args = parser.parse_args(argv)

    if args.command == "check":
        try:
            config = load_config_from_yaml(args.config)
            config = apply_overrides(
                config,
                pattern=args.pattern,
                properties=args.properties,
                only_declarations=args.only_declarations,
            )
        except ConfigurationError as exc:
            sys.stderr.write(f"[idmatch] Configuration error: {exc}\n")
            return 2

        rule = IdMatchRule(config)
        violations: List[Violation] = []
        for path in args.files:
            tree = _load_tree(path)
            if tree is None:
                continue
            violations.extend(rule.check_all(iter_identifier_occurrences(tree, file=path)))

        emit_violations_json(violations, out=args.out)
        if violations and args.fail_on_violation:
            return 1
        return 0

    # unreachable if parser is correct
    return 1


if __name__ == "__main__":
    sys.exit(main())

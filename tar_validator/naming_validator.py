"""
Variable naming conventions validator.

Variables are defined with ``Into <name>`` and used through substitution
patterns. Names should be camelCase, 2-50 characters long and not one of the
reserved words. Usage before definition and unused definitions are reported
too.
"""

import logging
import re
from typing import Optional

from .models import Document, RuleSet, Severity, ValidationIssue

logger = logging.getLogger(__name__)

MIN_LENGTH = 2
MAX_LENGTH = 50
RESERVED_WORDS = frozenset({"test", "result", "response", "request", "error", "data"})
# Provided by the interpreter; compared case-insensitively
BUILT_IN_VARIABLES = frozenset({"input", "header", "globalconfig", "response", "result"})

CAMEL_CASE_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")

RULES = RuleSet(
    name="naming-conventions",
    enabled=True,
    severity=Severity.ERROR,
    options={
        "enforce_case": "camelCase",
        "min_length": MIN_LENGTH,
        "max_length": MAX_LENGTH,
        "reserved_words": tuple(sorted(RESERVED_WORDS)),
        "built_in_variables": tuple(sorted(BUILT_IN_VARIABLES)),
    },
)


def get_rules() -> RuleSet:
    return RULES


def is_built_in(name: str) -> bool:
    return name.lower() in BUILT_IN_VARIABLES


def to_camel_case(name: str) -> str:
    """Suggest a camelCase spelling for snake_case, kebab-case or PascalCase names."""
    for separator in ("_", "-"):
        if separator in name:
            parts = [p for p in name.split(separator) if p]
            if not parts:
                return name
            return parts[0].lower() + "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])
    return name[:1].lower() + name[1:]


def check_name(name: str) -> tuple[bool, Optional[str]]:
    """Return (valid, suggestion) for a single variable name."""
    if len(name) < MIN_LENGTH:
        return False, f"Variable name should be at least {MIN_LENGTH} characters"
    if len(name) > MAX_LENGTH:
        return False, f"Variable name should be at most {MAX_LENGTH} characters"
    if name.lower() in RESERVED_WORDS:
        return False, (f'"{name}" is a reserved word - use a more descriptive name like '
                       f'"{name}Data" or "{name}Value"')
    if not CAMEL_CASE_RE.match(name):
        return False, f'Use camelCase: "{to_camel_case(name)}"'
    return True, None


def check_variable_names(doc: Document) -> list[dict]:
    """Verdict for every distinct variable name, in order of first occurrence.

    Built-in variables are skipped unless the document defines them itself.
    """
    defined = {v.name for v in doc.variables if v.is_definition}
    verdicts = []
    seen = set()
    for ref in doc.variables:
        if ref.name in seen:
            continue
        seen.add(ref.name)
        if is_built_in(ref.name) and ref.name not in defined:
            continue
        valid, suggestion = check_name(ref.name)
        verdict = {"name": ref.name, "valid": valid, "line": ref.line, "context": ref.context}
        if suggestion:
            verdict["suggestion"] = suggestion
        verdicts.append(verdict)
    return verdicts


def validate(doc: Document) -> list[ValidationIssue]:
    issues = []

    for verdict in check_variable_names(doc):
        if not verdict["valid"]:
            issues.append(ValidationIssue(
                code="NAME001",
                message=f'Variable "{verdict["name"]}" does not follow camelCase naming convention',
                severity=Severity.ERROR,
                line=verdict["line"],
                context=verdict["context"],
                suggestion=verdict.get("suggestion"),
            ))

    first_definition = {}
    for ref in doc.variables:
        if ref.is_definition:
            first_definition[ref.name] = min(ref.line, first_definition.get(ref.name, ref.line))

    usages = sorted((v for v in doc.variables if not v.is_definition), key=lambda v: v.line)
    for ref in usages:
        # Capitalized names are interpreter functions or special references
        if is_built_in(ref.name) or ref.name[:1].isupper():
            continue
        defined_at = first_definition.get(ref.name)
        if defined_at is None or defined_at > ref.line:
            issues.append(ValidationIssue(
                code="NAME002",
                message=f'Variable "{ref.name}" is used before it is defined',
                severity=Severity.WARNING,
                line=ref.line,
                context=ref.context,
                suggestion=f'Define "{ref.name}" with Eval, Get, Create or similar (Into {ref.name}) '
                           f"before using it, or check for typos",
            ))

    used = {v.name for v in doc.variables if not v.is_definition}
    for ref in doc.variables:
        if ref.is_definition and ref.name not in used:
            issues.append(ValidationIssue(
                code="NAME003",
                message=f'Variable "{ref.name}" is defined but never used',
                severity=Severity.INFO,
                line=ref.line,
                context=ref.context,
            ))

    logger.debug(f"Naming validation found {len(issues)} issues")
    return issues

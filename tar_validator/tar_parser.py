"""
Parser for TAR test documents (.mkd / .md).

A TAR document is Markdown with a YAML frontmatter block. Only the parts of
Markdown needed to locate TAR content are understood: ATX and setext headings
(which delimit sections) and fenced code blocks (which hold commands). Parsing
never raises for malformed content; the worst case is a Document with no
metadata and empty collections.
"""

import logging
import re
from typing import Optional

import yaml
from frontmatter.default_handlers import YAMLHandler

from .models import (
    Command,
    CommandType,
    Document,
    FileType,
    HttpOperation,
    Metadata,
    PatternRef,
    PatternType,
    Section,
    SectionType,
    SERVER_CALL_COMMANDS,
    TARGETED_COMMANDS,
    VariableRef,
)

logger = logging.getLogger(__name__)

# Code block info strings that may hold TAR commands ("" means no info string)
COMMAND_BLOCK_LANGUAGES = {"", "cs", "tar", "script"}

# Heading keywords per section type, checked in this order
SECTION_KEYWORDS = [
    (SectionType.ARRANGE, ("arrange", "setup", "given")),
    (SectionType.ACT, ("act", "when", "execute")),
    (SectionType.ASSERT, ("assert", "then", "verify", "expect")),
]

PATTERN_TYPES = {
    "#": PatternType.UTIL_REFERENCE,
    "%": PatternType.DATA_SUBSTITUTION,
    "$": PatternType.ENV_VARIABLE,
}

CONTEXT_LENGTH = 50

_BOM = "\ufeff"
# `---` delimited YAML block at the very start of the document
_FRONTMATTER = YAMLHandler()

_KEYWORD_RES = [(ct, re.compile(rf"^{ct.value}\b", re.IGNORECASE)) for ct in CommandType]
_INTO_RE = re.compile(r"\bInto\s+(\w+)", re.IGNORECASE)
_USING_RE = re.compile(r"\bUsing\s+(\w+(?:\.\w+)*)", re.IGNORECASE)
_WHEN_RE = re.compile(r"\bWhen\s+(.+?)(?:\s+Into|\s+Using|$)", re.IGNORECASE)
_CATCH_ERROR_RE = re.compile(r"\bCatchError\b", re.IGNORECASE)
_EXPECT_FAIL_RE = re.compile(r"\bExpectFail\b", re.IGNORECASE)

_FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^\s`]*)")
_ATX_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_SETEXT_UNDERLINE_RE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")

_PATTERN_RE = re.compile(r"\{([#%$])([^}]*)\}")
_UNCLOSED_PATTERN_RE = re.compile(r"\{([#%$])([^}]*)$")
_VALID_IDENTIFIER_RE = re.compile(
    r"^[\w.]+(?:\([\w,\s\"']*\))?(?:\.[\w.]+(?:\([\w,\s\"']*\))?)*$"
)
# A variable usage: plain leading name, then dotted members that may be calls
_VARIABLE_USAGE_RE = re.compile(r"^(\w+)(?:\.\w+(?:\([^()]*\))?)*$")


class _CodeBlock:
    """A fenced code block; ``start_line`` is the 1-based line of the opening fence."""

    def __init__(self, info: str, start_line: int):
        self.info = info
        self.start_line = start_line
        self.lines: list[str] = []

    def numbered_lines(self):
        for offset, line in enumerate(self.lines):
            yield self.start_line + 1 + offset, line


def parse(text: str) -> Document:
    """Parse TAR document text into a Document."""
    if text.startswith(_BOM):
        text = text[1:]
    lines = text.splitlines()

    metadata, body_start = _split_frontmatter(text)
    file_type = _file_type(metadata)
    headings, code_blocks = _scan_markdown(lines, body_start)
    command_blocks = [b for b in code_blocks if b.info.lower() in COMMAND_BLOCK_LANGUAGES]

    commands = extract_commands(command_blocks)
    sections = _build_sections(lines, body_start, headings, commands)
    variables = _extract_variables(command_blocks)
    patterns = extract_patterns(lines)

    logger.debug(
        f"Parsed document: type={file_type.value if file_type else None}, "
        f"{len(sections)} sections, {len(commands)} commands, "
        f"{len(variables)} variable refs, {len(patterns)} patterns"
    )
    return Document(
        metadata=metadata,
        file_type=file_type,
        sections=sections,
        variables=variables,
        patterns=patterns,
        commands=commands,
        raw=text,
    )


def _split_frontmatter(text: str) -> tuple[Optional[Metadata], int]:
    """Return (metadata, index of first body line)."""
    if not _FRONTMATTER.detect(text):
        return None, 0
    try:
        block, body = _FRONTMATTER.split(text)
    except ValueError:
        # No closing delimiter: not frontmatter
        return None, 0

    closing = text[:len(text) - len(body)].rstrip()
    return _load_metadata(block), closing.count("\n") + 1


def _load_metadata(block: str) -> Optional[Metadata]:
    try:
        data = _FRONTMATTER.load(block)
    except yaml.YAMLError as e:
        logger.debug(f"Frontmatter is not valid YAML: {e}")
        return None
    if not isinstance(data, dict):
        return None
    return Metadata.from_mapping(data)


def _file_type(metadata: Optional[Metadata]) -> Optional[FileType]:
    if metadata is None or not isinstance(metadata.type, str):
        return None
    try:
        return FileType(metadata.type)
    except ValueError:
        return None


def _scan_markdown(lines: list[str], start: int) -> tuple[list[tuple[int, str]], list[_CodeBlock]]:
    """Find top-level headings and fenced code blocks.

    Returns headings as (1-based line, text) pairs in source order.
    """
    headings: list[tuple[int, str]] = []
    blocks: list[_CodeBlock] = []
    fence: Optional[str] = None
    block: Optional[_CodeBlock] = None
    paragraph: list[tuple[int, str]] = []

    for idx in range(start, len(lines)):
        line = lines[idx]
        line_no = idx + 1

        if fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence) and set(stripped) == {fence[0]} \
                    and len(line) - len(line.lstrip(" ")) <= 3:
                fence = None
                block = None
            else:
                block.lines.append(line)
            continue

        fence_match = _FENCE_OPEN_RE.match(line)
        if fence_match:
            paragraph = []
            fence = fence_match.group(1)
            block = _CodeBlock(fence_match.group(2), line_no)
            blocks.append(block)
            continue

        atx = _ATX_HEADING_RE.match(line)
        if atx:
            paragraph = []
            headings.append((line_no, (atx.group(2) or "").strip()))
            continue

        if paragraph and _SETEXT_UNDERLINE_RE.match(line):
            first_line = paragraph[0][0]
            headings.append((first_line, " ".join(text.strip() for _, text in paragraph)))
            paragraph = []
            continue

        if line.strip():
            paragraph.append((line_no, line))
        else:
            paragraph = []

    return headings, blocks


def classify_section(heading: str) -> SectionType:
    """Classify a section by keywords in its heading text."""
    lower = heading.lower().strip()
    for section_type, keywords in SECTION_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return section_type
    return SectionType.OTHER


def _build_sections(lines, body_start, headings, commands) -> list[Section]:
    last_line = len(lines)
    bounds: list[tuple[int, int, str]] = []

    # Body lines before the first heading, blank or not, form an unnamed section
    first_heading = headings[0][0] if headings else last_line + 1
    if body_start + 1 <= first_heading - 1:
        bounds.append((body_start + 1, first_heading - 1, ""))

    for i, (line_no, heading) in enumerate(headings):
        end = headings[i + 1][0] - 1 if i + 1 < len(headings) else last_line
        bounds.append((line_no, end, heading))

    sections = []
    for line_start, line_end, heading in bounds:
        operations = [
            HttpOperation(method=cmd.type.value.upper(), url=cmd.target, line=cmd.line)
            for cmd in commands
            if cmd.type in SERVER_CALL_COMMANDS and cmd.target
            and line_start <= cmd.line <= line_end
        ]
        sections.append(Section(
            type=classify_section(heading) if heading else SectionType.OTHER,
            heading=heading,
            content="\n".join(lines[line_start - 1:line_end]),
            line_start=line_start,
            line_end=line_end,
            operations=operations,
        ))
    return sections


def _is_comment(stripped: str) -> bool:
    return stripped.startswith("//") or stripped.startswith("--")


def extract_commands(blocks) -> list[Command]:
    """Extract TAR commands from command code blocks."""
    commands = []
    for block in blocks:
        lines = block.lines
        idx = 0
        while idx < len(lines):
            stripped = lines[idx].strip()
            line_no = block.start_line + 1 + idx
            if not stripped or _is_comment(stripped):
                idx += 1
                continue

            command = parse_command_line(stripped, line_no)
            if command is None:
                idx += 1
                continue

            body, last_idx = _extract_json_body(lines, idx)
            if body is not None:
                command.json_body = body
            commands.append(command)
            idx = last_idx + 1
    return commands


def parse_command_line(line: str, line_no: int) -> Optional[Command]:
    """Parse one stripped code line; returns None when it is not a command."""
    for command_type, keyword_re in _KEYWORD_RES:
        if not keyword_re.match(line):
            continue

        command = Command(type=command_type, text=line, line=line_no)

        into = _INTO_RE.search(line)
        if into:
            command.into_var = into.group(1)
        using = _USING_RE.search(line)
        if using:
            command.using_var = using.group(1)
        when = _WHEN_RE.search(line)
        if when and when.group(1).strip():
            command.when_condition = when.group(1).strip()
        command.has_catch_error = bool(_CATCH_ERROR_RE.search(line))
        command.has_expect_fail = bool(_EXPECT_FAIL_RE.search(line))

        if command_type in TARGETED_COMMANDS:
            target = re.match(
                rf"^{command_type.value}(?:\s+(?:CatchError|ExpectFail))*\s+(\S+)",
                line, re.IGNORECASE,
            )
            if target:
                command.target = target.group(1)
        return command
    return None


def _extract_json_body(lines: list[str], cmd_idx: int) -> tuple[Optional[str], int]:
    """Capture a JSON object/array body following the command at ``cmd_idx``.

    Returns (body, index of last consumed line). Brackets inside double-quoted
    strings do not count towards the balance.
    """
    collected = []
    depth = 0
    for idx in range(cmd_idx + 1, len(lines)):
        line = lines[idx]
        stripped = line.strip()
        if not collected:
            if not stripped or _is_comment(stripped):
                continue
            if not stripped.startswith(("{", "[")):
                return None, cmd_idx

        collected.append(line)
        in_string = escaped = False
        for ch in line:
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
        if depth <= 0:
            return "\n".join(collected), idx

    return None, cmd_idx


def _extract_variables(blocks) -> list[VariableRef]:
    variables = []
    for block in blocks:
        for line_no, line in block.numbered_lines():
            context = line.strip()[:CONTEXT_LENGTH]
            for into in _INTO_RE.finditer(line):
                variables.append(VariableRef(
                    name=into.group(1), line=line_no, is_definition=True, context=context,
                ))
            for match in _PATTERN_RE.finditer(line):
                usage = _VARIABLE_USAGE_RE.match(match.group(2).strip())
                if usage:
                    variables.append(VariableRef(
                        name=usage.group(1), line=line_no, is_definition=False, context=context,
                    ))
    return variables


def is_valid_identifier(identifier: str) -> bool:
    """Syntactic check of a substitution identifier such as ``a.b.Items(0)``."""
    return bool(_VALID_IDENTIFIER_RE.match(identifier.strip()))


def extract_patterns(lines: list[str]) -> list[PatternRef]:
    """Find substitution patterns on every line of the document."""
    patterns = []
    for line_no, line in enumerate(lines, start=1):
        for match in _PATTERN_RE.finditer(line):
            prefix, identifier = match.group(1), match.group(2)
            if not identifier.strip():
                valid, problem = False, "empty"
            else:
                valid = is_valid_identifier(identifier)
                problem = None if valid else "syntax"
            patterns.append(PatternRef(
                pattern=match.group(0),
                type=PATTERN_TYPES.get(prefix, PatternType.UNKNOWN),
                identifier=identifier,
                line=line_no,
                valid=valid,
                problem=problem,
            ))

        unclosed = _UNCLOSED_PATTERN_RE.search(line)
        if unclosed:
            patterns.append(PatternRef(
                pattern=unclosed.group(0),
                type=PATTERN_TYPES.get(unclosed.group(1), PatternType.UNKNOWN),
                identifier=unclosed.group(2),
                line=line_no,
                valid=False,
                problem="unclosed",
            ))
    return patterns

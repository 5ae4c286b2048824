"""Parser for .kql files carrying a structured comment header.

A file looks like:

    // Name: Suspicious sign-ins from new countries
    // Description: Finds accounts signing in from a country
    //   not seen in the previous 14 days.
    // Tactics: InitialAccess, CredentialAccess
    // Techniques: T1078, T1110
    // Id: 7f1c2a9e-0000-4000-8000-000000000001
    SigninLogs
    | where ResultType == 0
    ...

Leading `//` lines form the header; the first other non-blank line starts
the KQL body. Header keys are case-insensitive.
"""

import logging
import re
from pathlib import Path

from sentinel_th.errors import ParseError
from sentinel_th.models import ParsedQueryFile

logger = logging.getLogger(__name__)

_HEADER_LINE_RE = re.compile(r"^\s*//\s?(?P<text>.*)$")
_KEY_VALUE_RE = re.compile(r"^(?P<key>[A-Za-z][A-Za-z _-]*?)\s*:\s*(?P<value>.*)$")

# Header keys and the ParsedQueryFile field each one fills
_KEY_ALIASES: dict[str, str] = {
    "name": "name",
    "title": "name",
    "displayname": "name",
    "description": "description",
    "tactics": "tactics",
    "tactic": "tactics",
    "techniques": "techniques",
    "technique": "techniques",
    "relevanttechniques": "techniques",
    "id": "extid",
    "extid": "extid",
}


def _split_list(value: str) -> list[str]:
    return [v.strip() for v in re.split(r"[,;]", value) if v.strip()]


def parse_kql_text(text: str) -> ParsedQueryFile:
    """Split header fields from the KQL body.

    Raises ParseError if nothing but comments and whitespace remain.
    """
    lines = text.lstrip("\ufeff").splitlines()
    fields: dict[str, str] = {}
    current: str | None = None
    body_start = len(lines)

    for idx, line in enumerate(lines):
        if not line.strip():
            continue
        match = _HEADER_LINE_RE.match(line)
        if match is None:
            body_start = idx
            break

        comment = match.group("text").strip()
        kv = _KEY_VALUE_RE.match(comment)
        key = None
        if kv:
            key = _KEY_ALIASES.get(re.sub(r"[\s_-]", "", kv.group("key").lower()))
        if key is not None:
            fields[key] = kv.group("value").strip()
            current = key
        elif current == "description" and comment:
            # Continuation of a wrapped description
            fields["description"] = f"{fields['description']} {comment}".strip()
        else:
            current = None

    body = "\n".join(lines[body_start:]).strip()
    if not body:
        raise ParseError("No KQL query found after the header comments")

    return ParsedQueryFile(
        query=body,
        name=fields.get("name", ""),
        description=fields.get("description", ""),
        tactics=_split_list(fields.get("tactics", "")),
        techniques=_split_list(fields.get("techniques", "")),
        extid=fields.get("extid", ""),
    )


def read_kql_file(path: str | Path) -> ParsedQueryFile:
    """Read and parse a .kql file. The caller owns the file's lifecycle."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8 text: {e}") from e
    parsed = parse_kql_text(text)
    logger.debug("Parsed %s: name=%r, %d tactic(s)", path, parsed.name, len(parsed.tactics))
    return parsed

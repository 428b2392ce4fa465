"""
Repairs for artifacts of the legacy SOBI feed.

BILL lines get ``normalize_bill_line``. XML fragments are assembled with
``wrap_document`` and then cleaned up by ``repair``, which applies, in order:

1. ``unwrap_cdata``: inside ``<![CDATA[...]]>`` drop newline placeholders and
   turn literal ``\\n`` sequences into line breaks. CDATA payloads arrive
   pre-escaped and must not be touched again.
2. ``expand_newlines``: every remaining placeholder becomes a line break.
3. ``strip_control_characters``: control characters other than ``\\n`` go.
4. ``collapse_spaces``: runs of two or more spaces become one.

None of these passes checks that the result is well-formed XML; processors
find out when they parse it.
"""

from __future__ import annotations

from collections.abc import Iterable
import re

from sobi.services.fragments.catalog import bill_line_type
from sobi.services.fragments.types import BillLineType

NEWLINE_PLACEHOLDER = "&newl;"
XML_HEADER = "<?xml version='1.0' encoding='UTF-8'?>"
ROOT_OPEN = "<SENATEDATA>"
ROOT_CLOSE = "</SENATEDATA>"

MEMO_ENCODING = "latin-1"
LEGACY_DEGREE = chr(193)
DEGREE_SIGN = "°"
LEGACY_SECTION = "\xb9"
SECTION_ENTITY = "&sect;"

_CDATA_PATTERN = re.compile(r"<!\[CDATA\[(.*?)\]\]>")
_CONTROL_PATTERN = re.compile(r"(?!\n)[\x00-\x1f\x7f]")
_SPACE_RUN_PATTERN = re.compile(r"(?!\.{2})[ ]{2,}")


def normalize_bill_line(line: str, *, encoding: str) -> str:
    # Sponsor memos are written upstream with a mismatched charset.
    if bill_line_type(line) is BillLineType.SPONSOR_MEMO:
        line = line.encode(encoding, errors="replace").decode(MEMO_ENCODING)
    return line.replace(LEGACY_DEGREE, DEGREE_SIGN)


def escape_reserved(line: str) -> str:
    return line.replace(LEGACY_SECTION, SECTION_ENTITY)


def wrap_document(start_line: str, lines: Iterable[str]) -> str:
    parts = [XML_HEADER, ROOT_OPEN, start_line, *lines]
    return "".join(f"{part}{NEWLINE_PLACEHOLDER}" for part in parts) + ROOT_CLOSE


def unwrap_cdata(text: str) -> str:
    def _unwrap(match: re.Match[str]) -> str:
        return match.group(0).replace(NEWLINE_PLACEHOLDER, "").replace("\\n", "\n")

    return _CDATA_PATTERN.sub(_unwrap, text)


def expand_newlines(text: str) -> str:
    return text.replace(NEWLINE_PLACEHOLDER, "\n")


def strip_control_characters(text: str) -> str:
    return _CONTROL_PATTERN.sub("", text)


def collapse_spaces(text: str) -> str:
    return _SPACE_RUN_PATTERN.sub(" ", text)


def repair(text: str) -> str:
    text = unwrap_cdata(text)
    text = expand_newlines(text)
    text = strip_control_characters(text)
    return collapse_spaces(text)

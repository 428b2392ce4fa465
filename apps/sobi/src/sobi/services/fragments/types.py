from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import re


class FragmentType(Enum):
    """Record types found in a SOBI file, in classification priority order.

    BILL lines use the fixed-width SOBI format and are merged into a single
    fragment per file, so BILL has no end pattern. Every other type is an XML
    block delimited by its start and end lines.
    """

    BILL = (r"[0-9]{4}[A-Z][0-9]{5}[ A-Z][1-9ABCMRTV].*", None)
    AGENDA = (r"<senagenda[\s>].*", r"</senagenda>.*")
    AGENDA_VOTE = (r"<senagendavote[\s>].*", r"</senagendavote>.*")
    CALENDAR = (r"<sencalendar[\s>].*", r"</sencalendar>.*")
    CALENDAR_ACTIVE = (r"<sencalendaractive[\s>].*", r"</sencalendaractive>.*")
    COMMITTEE = (r"<sencommittee[\s>].*", r"</sencommittee>.*")
    ANNOTATION = (r"<annotationdata[\s>].*", r"</annotationdata>.*")
    APPROVAL = (r"<approvalmessagetext[\s>].*", r"</approvalmessagetext>.*")
    VETO_MESSAGE = (r"<vetomessage[\s>].*", r"</vetomessage>.*")

    def __init__(self, start_pattern: str, end_pattern: str | None) -> None:
        self.start_pattern = re.compile(start_pattern)
        self.end_pattern = re.compile(end_pattern) if end_pattern is not None else None

    @property
    def is_primary(self) -> bool:
        return self.end_pattern is None


class BillLineType(Enum):
    """Record subtype stored at a fixed offset of every BILL line."""

    BILL_INFO = "1"
    LAW_SECTION = "2"
    TITLE = "3"
    BILL_EVENT = "4"
    SAME_AS = "5"
    SPONSOR = "6"
    CO_SPONSOR = "7"
    MULTI_SPONSOR = "8"
    PROGRAM_INFO = "9"
    ACT_CLAUSE = "A"
    LAW = "B"
    SUMMARY = "C"
    SPONSOR_MEMO = "M"
    RESOLUTION_TEXT = "R"
    TEXT = "T"
    VOTE_MEMO = "V"


BILL_LINE_TYPE_OFFSET = 11


@dataclass(frozen=True)
class SourceDocument:
    file_name: str
    published_date_time: datetime
    encoding: str
    text: str
    staged_date_time: datetime | None = None
    archived: bool = False


@dataclass
class Fragment:
    file_name: str
    published_date_time: datetime
    fragment_type: FragmentType
    sequence_no: int
    text: str
    pending_processing: bool = False
    processed_count: int = 0
    processed_date_time: datetime | None = None

    @property
    def fragment_id(self) -> str:
        return f"{self.file_name}-{self.sequence_no}-{self.fragment_type.name}"

    def __str__(self) -> str:
        return self.fragment_id

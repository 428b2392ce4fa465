from __future__ import annotations

from collections.abc import Sequence

from sobi.services.fragments.types import BILL_LINE_TYPE_OFFSET, BillLineType, FragmentType


class FragmentTypeCatalog:
    """Matches SOBI lines against the start and end patterns of each fragment type.

    Types are tried in the order given; the first whose start pattern matches
    the whole line wins.
    """

    def __init__(self, types: Sequence[FragmentType] | None = None) -> None:
        self._types = tuple(types) if types is not None else tuple(FragmentType)

    @property
    def types(self) -> tuple[FragmentType, ...]:
        return self._types

    def classify(self, line: str) -> FragmentType | None:
        for fragment_type in self._types:
            if fragment_type.start_pattern.fullmatch(line):
                return fragment_type
        return None

    def is_end(self, fragment_type: FragmentType, line: str) -> bool:
        if fragment_type.end_pattern is None:
            return False
        return fragment_type.end_pattern.fullmatch(line) is not None


def bill_line_type(line: str) -> BillLineType | None:
    if len(line) <= BILL_LINE_TYPE_OFFSET:
        return None
    try:
        return BillLineType(line[BILL_LINE_TYPE_OFFSET])
    except ValueError:
        return None


DEFAULT_CATALOG = FragmentTypeCatalog()

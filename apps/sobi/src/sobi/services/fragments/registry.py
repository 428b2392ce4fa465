from __future__ import annotations

from collections.abc import Mapping
import importlib
from types import MappingProxyType
from typing import Protocol

from sobi.services.fragments.types import Fragment, FragmentType


class ProcessorConfigError(ValueError):
    pass


class FragmentProcessor(Protocol):
    def process(self, fragment: Fragment) -> None: ...


def parse_processor_specs(raw: str) -> dict[str, str]:
    """Parses ``"BILL=pkg.bills:BillProcessor, CALENDAR=pkg.cal:processor"``."""
    specs: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        type_name, separator, target = entry.partition("=")
        if not separator or not type_name.strip() or not target.strip():
            raise ProcessorConfigError(f"Invalid processor entry (expected TYPE=module:attr): {entry!r}")
        specs[type_name.strip().upper()] = target.strip()
    return specs


def _load_target(target: str) -> FragmentProcessor:
    module_name, separator, attr_path = target.partition(":")
    if not separator or not module_name or not attr_path:
        raise ProcessorConfigError(f"Invalid processor target (expected module:attr): {target!r}")

    try:
        obj: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise ProcessorConfigError(f"Cannot import processor module {module_name!r}: {exc}") from exc

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as exc:
            raise ProcessorConfigError(f"Processor target not found: {target!r}") from exc

    if isinstance(obj, type):
        obj = obj()
    if not callable(getattr(obj, "process", None)):
        raise ProcessorConfigError(f"Processor {target!r} has no process(fragment) method")
    return obj  # type: ignore[return-value]


class ProcessorRegistry:
    """Immutable fragment type to processor mapping, built once at startup."""

    def __init__(self, processors: Mapping[FragmentType, FragmentProcessor] | None = None) -> None:
        self._processors: Mapping[FragmentType, FragmentProcessor] = MappingProxyType(
            dict(processors or {})
        )

    @classmethod
    def from_specs(cls, specs: Mapping[str, str]) -> ProcessorRegistry:
        processors: dict[FragmentType, FragmentProcessor] = {}
        for type_name, target in specs.items():
            try:
                fragment_type = FragmentType[type_name]
            except KeyError as exc:
                raise ProcessorConfigError(f"Unknown fragment type: {type_name!r}") from exc
            processors[fragment_type] = _load_target(target)
        return cls(processors)

    def resolve(self, fragment_type: FragmentType) -> FragmentProcessor | None:
        return self._processors.get(fragment_type)

    def registered_types(self) -> frozenset[FragmentType]:
        return frozenset(self._processors)

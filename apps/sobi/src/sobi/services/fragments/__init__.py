from sobi.services.fragments.catalog import DEFAULT_CATALOG, FragmentTypeCatalog
from sobi.services.fragments.collate import CollationCoordinator
from sobi.services.fragments.dispatch import (
    DispatchCoordinator,
    FragmentProcessingError,
    UnhandledFragmentPolicy,
)
from sobi.services.fragments.extractor import extract_fragments
from sobi.services.fragments.registry import (
    FragmentProcessor,
    ProcessorConfigError,
    ProcessorRegistry,
)
from sobi.services.fragments.store import (
    FragmentNotFoundError,
    FragmentStore,
    SortOrder,
    SqlFragmentStore,
)
from sobi.services.fragments.types import BillLineType, Fragment, FragmentType, SourceDocument

__all__ = [
    "BillLineType",
    "CollationCoordinator",
    "DEFAULT_CATALOG",
    "DispatchCoordinator",
    "Fragment",
    "FragmentNotFoundError",
    "FragmentProcessingError",
    "FragmentProcessor",
    "FragmentStore",
    "FragmentType",
    "FragmentTypeCatalog",
    "ProcessorConfigError",
    "ProcessorRegistry",
    "SortOrder",
    "SourceDocument",
    "SqlFragmentStore",
    "UnhandledFragmentPolicy",
    "extract_fragments",
]

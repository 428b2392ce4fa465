from __future__ import annotations

from collections.abc import Callable

import structlog

from sobi.services.fragments.catalog import DEFAULT_CATALOG, FragmentTypeCatalog
from sobi.services.fragments.extractor import extract_fragments
from sobi.services.fragments.store import FragmentStore, SortOrder
from sobi.services.fragments.types import Fragment, SourceDocument

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


class CollationCoordinator:
    """Turns incoming SOBI files into pending fragments, then archives the files.

    A file is archived only after its metadata and every one of its fragments
    were saved. A crash in between leaves the file in the incoming directory,
    and collating it again rewrites the same fragment ids.

    Not safe to run two instances against the same store at once.
    """

    def __init__(
        self,
        store: FragmentStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        catalog: FragmentTypeCatalog = DEFAULT_CATALOG,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._store = store
        self._batch_size = batch_size
        self._catalog = catalog

    def collate_document(self, document: SourceDocument) -> list[Fragment]:
        fragments = extract_fragments(document, catalog=self._catalog)
        self._store.save_document(document, fragment_count=len(fragments))
        for fragment in fragments:
            fragment.pending_processing = True
            logger.debug("saving_fragment", fragment_id=fragment.fragment_id)
            self._store.save_fragment(fragment)
        self._store.archive_document(document)
        return fragments

    def collate_all(self, *, on_batch: Callable[[], bool] | None = None) -> int:
        """Collates every staged file; returns how many were collated.

        ``on_batch`` runs before each batch and stops the pass when it returns False.
        """
        total_collated = 0
        while True:
            if on_batch is not None and not on_batch():
                logger.warning("collation_interrupted", collated=total_collated)
                return total_collated

            try:
                documents = self._store.fetch_incoming_documents(SortOrder.ASC, self._batch_size)
            except OSError as exc:
                logger.error(
                    "collation_fetch_failed",
                    collated=total_collated,
                    error=str(exc),
                    exc_info=True,
                )
                return total_collated

            if not documents:
                logger.debug("collation_idle", collated=total_collated)
                return total_collated

            logger.info("collating_batch", documents=len(documents))
            for document in documents:
                fragments = self.collate_document(document)
                total_collated += 1
                logger.info(
                    "sobi_file_collated",
                    file_name=document.file_name,
                    fragments=len(fragments),
                )

"""Document view shared by the synced collections.

Advertisers, offers and products are stored as rows, but the sync engine
reasons about them as documents: a flat dict of data fields keyed by column
name. Bookkeeping columns (surrogate id, document key, updated_at) and
storage-only columns are excluded from the view.
"""

from typing import Any, ClassVar


class DocumentMixin:
    """Adds document-style access to a mapped model."""

    # Data fields that take part in change detection, in column order.
    DOCUMENT_FIELDS: ClassVar[tuple[str, ...]] = ()

    def to_document(self) -> dict[str, Any]:
        """Return the document view (None values are kept, callers drop them)."""
        return {name: getattr(self, name) for name in self.DOCUMENT_FIELDS}

    def apply(self, values: dict[str, Any]) -> None:
        """Merge-write document fields onto the row; unknown keys are ignored."""
        for name, value in values.items():
            if name in self.DOCUMENT_FIELDS:
                setattr(self, name, value)

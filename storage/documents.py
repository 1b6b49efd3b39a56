"""Processed Document Registry.

Remembers the SHA256 of every invoice file reconciled without line errors,
so a copy of an already processed file dropped again into the watch folder
is recognised and never posted twice. Files with failed lines are left out
so that dropping them in again retries those lines.
"""

from datetime import datetime
from typing import Optional

from models.inventory import ProcessedDocument
from storage.db import SQLiteStore, store_errors


class DocumentRegistry(SQLiteStore):
    """Content-hash registry of reconciled documents."""

    def is_processed(self, content_hash: str) -> bool:
        return self.get(content_hash) is not None

    def get(self, content_hash: str) -> Optional[ProcessedDocument]:
        with store_errors("get processed document"), self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM processed_documents WHERE content_hash = ?",
                (content_hash,),
            ).fetchone()
        if row is None:
            return None
        return ProcessedDocument(
            content_hash=row["content_hash"],
            source_file=row["source_file"],
            supplier_name=row["supplier_name"],
            invoice_number=row["invoice_number"],
            processed_at=datetime.fromisoformat(row["processed_at"]),
        )

    def record(self, document: ProcessedDocument) -> None:
        """Record a reconciled document; an existing hash is left untouched."""
        with store_errors("record processed document"), self._connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO processed_documents
                (content_hash, source_file, supplier_name, invoice_number, processed_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    document.content_hash,
                    document.source_file,
                    document.supplier_name,
                    document.invoice_number,
                    document.processed_at.isoformat(),
                ),
            )

from __future__ import annotations

from typing import Any, Dict

from medstudy.services.ingestion_service import process_document


def task_process_document(document_id: int) -> Dict[str, Any]:
    """Background: run the ingestion pipeline for one uploaded document.

    Safe to deliver more than once; only a ``pending`` document is processed.
    """
    return process_document(int(document_id))

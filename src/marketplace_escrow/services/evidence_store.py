"""In-memory evidence storage.

Production deployments plug an object store in behind the EvidenceStore
protocol; this one keeps blobs in a dict and hands out ``memory://`` URLs.
"""

from __future__ import annotations

import uuid

from marketplace_escrow.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryEvidenceStore:
    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}

    async def store(self, blob: bytes, filename: str, content_type: str) -> str:
        reference = f"memory://evidence/{uuid.uuid4()}/{filename}"
        self.blobs[reference] = (blob, content_type)
        logger.info("evidence.stored", reference=reference, size=len(blob))
        return reference

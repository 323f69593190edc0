"""Error taxonomy for the retrieval subsystem.

Classes:
    RAGError: Base error carrying the entity id and operation that failed.
    ProviderError: Embedding or chat provider call failed (network, timeout, quota, configuration).
    StoreError: A required embedding store read or write failed.
    NotFoundError: The target person does not exist.
    AnalysisError: The external analysis tool failed or returned nothing usable.
"""

from __future__ import annotations

from typing import Any, Optional


class RAGError(Exception):
    def __init__(
        self,
        message: str,
        *,
        entity_id: Optional[Any] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        self.operation = operation

    def with_context(self, *, entity_id: Any = None, operation: Optional[str] = None) -> "RAGError":
        """Return a copy of this error annotated with the caller's entity id and operation."""

        return type(self)(
            self.message,
            entity_id=entity_id if entity_id is not None else self.entity_id,
            operation=operation or self.operation,
        )

    def __str__(self) -> str:
        details = []
        if self.operation:
            details.append(f"operation={self.operation}")
        if self.entity_id is not None:
            details.append(f"entity_id={self.entity_id}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class ProviderError(RAGError):
    pass


class StoreError(RAGError):
    pass


class NotFoundError(RAGError):
    pass


class AnalysisError(RAGError):
    pass

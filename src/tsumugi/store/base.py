from __future__ import annotations
from abc import ABC, abstractmethod


class DocumentNotFoundError(LookupError):
    def __init__(self, doc_id: str):
        super().__init__(f"Document not found: {doc_id}")
        self.doc_id = doc_id


class DocumentStore(ABC):
    """Where plain-text documents live. Implementations are synchronous; the gateway offloads them."""

    @abstractmethod
    def read(self, doc_id: str) -> str:
        """Return the stored text. Raises DocumentNotFoundError if there is none."""
        raise NotImplementedError

    @abstractmethod
    def write(self, doc_id: str, text: str) -> None:
        """Replace the stored text; on failure the previous text must survive."""
        raise NotImplementedError

    def exists(self, doc_id: str) -> bool:
        try:
            self.read(doc_id)
        except DocumentNotFoundError:
            return False
        return True

from dataclasses import dataclass, field

from tsumugi.store.base import DocumentNotFoundError, DocumentStore


@dataclass
class MemoryStore(DocumentStore):
    _docs: dict[str, str] = field(default_factory=dict)

    def read(self, doc_id: str) -> str:
        if doc_id not in self._docs:
            raise DocumentNotFoundError(doc_id)
        return self._docs[doc_id]

    def write(self, doc_id: str, text: str) -> None:
        self._docs[doc_id] = text

    def exists(self, doc_id: str) -> bool:
        return doc_id in self._docs

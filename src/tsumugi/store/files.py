"""Documents as UTF-8 files under a root directory"""

import os
import tempfile
from pathlib import Path

from tsumugi.store.base import DocumentNotFoundError, DocumentStore


class FileStore(DocumentStore):

    def __init__(self, root: str | Path = "."):
        self.root = Path(root).resolve()

    def path_for(self, doc_id: str) -> Path:
        """Resolve doc_id under the root. Raises ValueError if it escapes the root."""
        path = (self.root / doc_id).resolve()
        if path == self.root or not path.is_relative_to(self.root):
            raise ValueError(f"Document id outside store root: {doc_id}")
        return path

    def read(self, doc_id: str) -> str:
        path = self.path_for(doc_id)
        if not path.is_file():
            raise DocumentNotFoundError(doc_id)
        # newline="" keeps CRLF sources byte-for-byte
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()

    def write(self, doc_id: str, text: str) -> None:
        """Write via a temp file and os.replace so readers never see a partial file."""
        path = self.path_for(doc_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

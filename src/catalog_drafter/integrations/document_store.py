import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class DocumentNotFoundError(KeyError):
    """No document with the given id in the collection"""


class DocumentStore(ABC):
    """Named collections of JSON documents keyed by id.

    Writes are last-write-wins; every document returned carries its id
    under the "id" key.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        pass

    @abstractmethod
    def all(self, collection: str) -> List[Document]:
        pass

    def add(self, collection: str, data: Document) -> str:
        """Store a new document under a generated id"""
        doc_id = data.get("id") or uuid.uuid4().hex
        self.set(collection, doc_id, {**data, "id": doc_id})
        return doc_id

    def update(self, collection: str, doc_id: str, changes: Document) -> Document:
        """Merge top-level fields into an existing document"""
        current = self.get(collection, doc_id)
        if current is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id}")

        current.update(changes)
        self.set(collection, doc_id, current)
        return current

    def query(self, collection: str, field: str, value: Any) -> List[Document]:
        """Documents whose top-level field equals value"""
        return [doc for doc in self.all(collection) if doc.get(field) == value]


class InMemoryDocumentStore(DocumentStore):
    """Process-local store, used in tests and one-off CLI runs"""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Document]]] = None):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()

        for collection, documents in (initial or {}).items():
            for doc_id, data in documents.items():
                self.set(collection, doc_id, data)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = {
                **copy.deepcopy(data),
                "id": doc_id,
            }

    def all(self, collection: str) -> List[Document]:
        return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]


class JsonDocumentStore(DocumentStore):
    """One JSON file per collection under a data directory"""

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _load(self, collection: str) -> Dict[str, Document]:
        path = self._path(collection)
        if not path.exists():
            return {}

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, collection: str, documents: Dict[str, Document]) -> None:
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")

        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(documents, f, indent=2, ensure_ascii=False, default=str)
        tmp_path.replace(path)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._load(collection).get(doc_id)

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            documents = self._load(collection)
            documents[doc_id] = {**data, "id": doc_id}
            self._save(collection, documents)
        logger.debug(f"Saved {collection}/{doc_id}")

    def all(self, collection: str) -> List[Document]:
        return list(self._load(collection).values())

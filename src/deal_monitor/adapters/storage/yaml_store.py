"""Document store keeping one YAML file per document."""

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from deal_monitor.core.errors import StoreError
from deal_monitor.core.interfaces import DocumentStore

logger = logging.getLogger(__name__)


class YamlDocumentStore(DocumentStore):
    """Store documents as individual YAML artifacts under ``root_dir/collection``."""

    def __init__(self, root_dir: Path, collection: str) -> None:
        self.root_dir = Path(root_dir)
        self.collection = collection
        self.collection_dir = self.root_dir / collection

    def _ensure_structure(self) -> None:
        self.collection_dir.mkdir(parents=True, exist_ok=True)

    def _get_document_path(self, doc_id: str) -> Path:
        """Get path for a document file."""
        safe_id = re.sub(r"[^\w.-]", "_", doc_id)
        return self.collection_dir / f"{safe_id}.yaml"

    def _read(self, path: Path) -> dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise StoreError(f"{path.name} does not contain a mapping")
        return data

    async def fetch_all(self) -> list[dict[str, Any]]:
        if not self.collection_dir.exists():
            return []

        documents = []
        for path in sorted(self.collection_dir.glob("*.yaml")):
            try:
                documents.append(self._read(path))
            except (OSError, yaml.YAMLError, StoreError) as e:
                logger.error("Could not read document %s: %s", path.name, e)
        return documents

    async def upsert(self, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        path = self._get_document_path(doc_id)
        try:
            self._ensure_structure()
            document: dict[str, Any] = {}
            if merge and path.exists():
                document = self._read(path)
            document.update(data)
            document.setdefault("id", doc_id)

            # Write then rename, so a crash never leaves half a document.
            tmp_path = path.with_suffix(".yaml.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(document, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
            tmp_path.replace(path)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Could not save document {doc_id}: {e}") from e

    async def delete(self, doc_id: str) -> None:
        try:
            self._get_document_path(doc_id).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Could not delete document {doc_id}: {e}") from e

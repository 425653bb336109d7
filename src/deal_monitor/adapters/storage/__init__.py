"""Persistence adapters."""

from deal_monitor.adapters.storage.yaml_store import YamlDocumentStore

__all__ = ["YamlDocumentStore"]

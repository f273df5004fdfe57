"""Services Package

Business logic for the content hierarchy admin back-office. Routes never
talk to the database directly; they resolve a service through the
factory below.
"""

from typing import Any, Dict, Optional

from .cascade_service import CascadeService
from .content_service import ContentService
from .node_store import NodeStore
from .reorder_service import ReorderService


class ServiceFactory:
    """Creates the services once and hands out shared instances."""

    def __init__(self, store: Optional[NodeStore] = None):
        self.store = store or NodeStore()
        self._cascade_service: Optional[CascadeService] = None
        self._reorder_service: Optional[ReorderService] = None
        self._content_service: Optional[ContentService] = None

    def get_node_store(self) -> NodeStore:
        return self.store

    def get_cascade_service(self) -> CascadeService:
        if self._cascade_service is None:
            self._cascade_service = CascadeService(self.store)
        return self._cascade_service

    def get_reorder_service(self) -> ReorderService:
        if self._reorder_service is None:
            self._reorder_service = ReorderService(self.store)
        return self._reorder_service

    def get_content_service(self) -> ContentService:
        if self._content_service is None:
            self._content_service = ContentService(self.store)
        return self._content_service

    def get_all_services(self) -> Dict[str, Any]:
        return {
            "node_store": self.get_node_store(),
            "cascade_service": self.get_cascade_service(),
            "reorder_service": self.get_reorder_service(),
            "content_service": self.get_content_service(),
        }


_service_factory: Optional[ServiceFactory] = None


def init_services(store: Optional[NodeStore] = None) -> ServiceFactory:
    """Initialize the global service factory."""
    global _service_factory
    _service_factory = ServiceFactory(store)
    return _service_factory


def get_service_factory() -> ServiceFactory:
    if _service_factory is None:
        raise RuntimeError("Services not initialized. Call init_services() first.")
    return _service_factory


# Convenience accessors used by the blueprints
def get_cascade_service() -> CascadeService:
    return get_service_factory().get_cascade_service()


def get_reorder_service() -> ReorderService:
    return get_service_factory().get_reorder_service()


def get_content_service() -> ContentService:
    return get_service_factory().get_content_service()


__all__ = [
    "ServiceFactory",
    "NodeStore",
    "CascadeService",
    "ReorderService",
    "ContentService",
    "init_services",
    "get_service_factory",
    "get_cascade_service",
    "get_reorder_service",
    "get_content_service",
]

"""Entity services - CRUD core, documents and registries."""

from ledgerforge.services.base import EntityService
from ledgerforge.services.bootstrap import LedgerServices, build_service, initialize_services
from ledgerforge.services.context import ServiceContext
from ledgerforge.services.document import DocumentService, Posting
from ledgerforge.services.registry import InfoRegistryService, SliceQuery, SumRegistryService
from ledgerforge.services.search import build_search_string

__all__ = [
    "DocumentService",
    "EntityService",
    "InfoRegistryService",
    "LedgerServices",
    "Posting",
    "ServiceContext",
    "SliceQuery",
    "SumRegistryService",
    "build_search_string",
    "build_service",
    "initialize_services",
]

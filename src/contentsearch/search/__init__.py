from .handler import Capable, SearchHandler
from .permissions import CriterionPermissions, PermissionCriterionResolver, UnrestrictedPermissions
from .repository_search import RepositorySearchService
from .service import Capability, SearchService
from .whoosh_engine import WhooshSearchEngine

__all__ = [
    "Capable",
    "SearchHandler",
    "CriterionPermissions",
    "PermissionCriterionResolver",
    "UnrestrictedPermissions",
    "RepositorySearchService",
    "Capability",
    "SearchService",
    "WhooshSearchEngine",
]

# Query composition layer: relation catalogs, listing filters and the composer.
from .composer import ConstraintViolation, InsertResult, QueryComposer  # noqa: F401
from .filters import FilterOptions, apply_filters, to_boolean  # noqa: F401
from .relations import EVENT_CATALOG, SUBSCRIBER_CATALOG, Catalog, JoinPlan, resolve_joins  # noqa: F401

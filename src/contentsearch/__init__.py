"""Content repository search: service contract, term aggregations and a Whoosh-backed engine."""

__version__ = "0.1.0"

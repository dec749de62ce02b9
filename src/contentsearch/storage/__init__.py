from .memory import ContentLoader, InMemoryContentStore

__all__ = ["ContentLoader", "InMemoryContentStore"]

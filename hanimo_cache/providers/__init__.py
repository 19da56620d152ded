"""Concrete adapters for the interfaces in ``hanimo_cache.interfaces``."""

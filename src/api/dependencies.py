"""
Shared FastAPI dependencies.
"""
from functools import lru_cache
from src.core.bootstrap import Components, build_components


@lru_cache()
def get_components() -> Components:
    """Wired application components; overridden in tests."""
    return build_components()

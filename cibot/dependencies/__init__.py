from cibot.dependencies.build_context import BuildContextDep, get_build_context
from cibot.dependencies.database import get_db

__all__ = ["BuildContextDep", "get_build_context", "get_db"]

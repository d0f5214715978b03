from .builds import router as builds_router
from .health import router as health_router
from .merge_check import router as merge_check_router
from .webhooks import router as webhooks_router

__all__ = ["builds_router", "health_router", "merge_check_router", "webhooks_router"]

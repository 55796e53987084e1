"""Route handlers for Web API."""

from noteearly.web.routes.health import router as health_router
from noteearly.web.routes.auth import router as auth_router
from noteearly.web.routes.profiles import router as profiles_router
from noteearly.web.routes.progress import router as progress_router
from noteearly.web.routes.reading_modules import router as reading_modules_router
from noteearly.web.routes.subscriptions import router as subscriptions_router
from noteearly.web.routes.analytics import router as analytics_router

__all__ = [
    "health_router",
    "auth_router",
    "profiles_router",
    "progress_router",
    "reading_modules_router",
    "subscriptions_router",
    "analytics_router",
]

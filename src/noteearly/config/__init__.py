"""Configuration package for NoteEarly."""

from noteearly.config.app_config import (
    AppConfig,
    AuthConfig,
    BillingConfig,
    DatabaseConfig,
    clear_config_cache,
    load_app_config,
)
from noteearly.config.plans import (
    PlanDefinition,
    clear_plans_cache,
    get_plan,
    list_plans,
    load_plans,
)

__all__ = [
    "AppConfig",
    "AuthConfig",
    "BillingConfig",
    "DatabaseConfig",
    "clear_config_cache",
    "load_app_config",
    "PlanDefinition",
    "clear_plans_cache",
    "get_plan",
    "list_plans",
    "load_plans",
]

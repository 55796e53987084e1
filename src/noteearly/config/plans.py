"""Subscription plan catalog loader.

Loads plan definitions from data/config/plans_v1.yaml. Each plan id is the
billing provider's price id; the tier decides which limits apply.

Usage:
    from noteearly.config.plans import get_plan, list_plans

    free = get_plan("free")
    all_plans = list_plans()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
PLANS_FILE = Path("data/config/plans_v1.yaml")

VALID_TIERS = ("free", "home", "pro")


@dataclass
class PlanDefinition:
    """A subscription plan and its limits."""

    id: str
    name: str
    tier: str
    price: str = "0"
    interval: str = "month"
    description: str = ""
    student_limit: int = 3
    module_limit: int = 3
    custom_module_limit: int = 1
    is_active: bool = True


# Module-level cache
_cached_plans: dict[str, PlanDefinition] | None = None


def _get_default_plans() -> dict[str, PlanDefinition]:
    """Get default plans when config file is missing."""
    return {
        "free": PlanDefinition(
            id="price_free",
            name="Free",
            tier="free",
            description="Try NoteEarly with a small class.",
            student_limit=3,
            module_limit=3,
            custom_module_limit=1,
        ),
        "home": PlanDefinition(
            id="price_home_monthly",
            name="Home",
            tier="home",
            price="9.99",
            description="For families and tutors.",
            student_limit=10,
            module_limit=50,
            custom_module_limit=5,
        ),
        "pro": PlanDefinition(
            id="price_pro_monthly",
            name="Pro",
            tier="pro",
            price="29.99",
            description="For classrooms.",
            student_limit=40,
            module_limit=500,
            custom_module_limit=20,
        ),
    }


def _parse_tier(plan_id: str, tier: str | None) -> str:
    """Validate a tier value, defaulting to 'free'."""
    if tier in VALID_TIERS:
        return tier
    logger.warning("invalid_plan_tier", plan_id=plan_id, tier=tier, allowed=VALID_TIERS)
    return "free"


def load_plans(force_reload: bool = False) -> dict[str, PlanDefinition]:
    """Load all plans from config file.

    Args:
        force_reload: If True, ignore cache and reload from file.

    Returns:
        Dictionary mapping tier to PlanDefinition.
    """
    global _cached_plans

    if _cached_plans is not None and not force_reload:
        return _cached_plans

    if not PLANS_FILE.exists():
        logger.debug("plans_file_not_found", path=str(PLANS_FILE))
        _cached_plans = _get_default_plans()
        return _cached_plans

    try:
        data = yaml.safe_load(PLANS_FILE.read_text(encoding="utf-8")) or {}
        plans_data = data.get("plans", {})

        _cached_plans = {}
        for key, pdata in plans_data.items():
            plan_id = pdata.get("id", key)
            tier = _parse_tier(plan_id, pdata.get("tier", key))
            _cached_plans[tier] = PlanDefinition(
                id=plan_id,
                name=pdata.get("name", key),
                tier=tier,
                price=str(pdata.get("price", "0")),
                interval=pdata.get("interval", "month"),
                description=pdata.get("description", ""),
                student_limit=int(pdata.get("student_limit", 3)),
                module_limit=int(pdata.get("module_limit", 3)),
                custom_module_limit=int(pdata.get("custom_module_limit", 1)),
                is_active=bool(pdata.get("is_active", True)),
            )

        logger.debug("loaded_plans", count=len(_cached_plans))
        return _cached_plans

    except (OSError, yaml.YAMLError, AttributeError, ValueError) as e:
        logger.error("failed_to_load_plans", error=str(e))
        _cached_plans = _get_default_plans()
        return _cached_plans


def get_plan(tier: str) -> PlanDefinition | None:
    """Get a plan definition by tier."""
    return load_plans().get(tier)


def list_plans() -> list[PlanDefinition]:
    """List all configured plans."""
    return list(load_plans().values())


def clear_plans_cache() -> None:
    """Clear the plans cache."""
    global _cached_plans
    _cached_plans = None

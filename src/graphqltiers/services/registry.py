"""Static tier registry."""

from typing import Dict, Union

from graphqltiers.models import Tier, TierConfig


def _entry(tier: Tier, offset: int, secret_suffix: str) -> TierConfig:
    name = tier.value
    return TierConfig(
        tier=tier,
        graphql_port=8100 + offset,
        graphql_container=f"{name}-graphql-server",
        graphql_volume=f"{name}_graphql_metadata",
        admin_secret=f"CCTech2024{secret_suffix}",
        db_port=7100 + offset,
        db_container=f"{name}-postgres",
        db_name=name,
        db_user=name,
        db_password=f"CCTech2024{secret_suffix}!",
        directory=f"{name}-graphql-api",
    )


TIER_REGISTRY: Dict[Tier, TierConfig] = {
    Tier.ADMIN: _entry(Tier.ADMIN, 1, "Admin"),
    Tier.OPERATOR: _entry(Tier.OPERATOR, 2, "Operator"),
    Tier.MEMBER: _entry(Tier.MEMBER, 3, "Member"),
}


def resolve_tier(name: Union[str, Tier]) -> TierConfig:
    """Returns the attribute set of a tier or raises ``UnknownTierError``."""
    tier = name if isinstance(name, Tier) else Tier.parse(name)
    return TIER_REGISTRY[tier]


def all_tiers():
    return list(TIER_REGISTRY.values())

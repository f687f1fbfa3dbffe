from dataclasses import dataclass

LOW_IMPACT_THRESHOLD = 0
HIGH_IMPACT_THRESHOLD = 100


@dataclass(frozen=True)
class ReputationTier:
    key: str
    impact: int
    label: str
    impact_text: str


CANNOT_VOUCH = ReputationTier("cannot_vouch", 0, "Cannot Vouch", "no")
LOW_IMPACT = ReputationTier("low_impact", 1, "Low Impact (+1/-1)", "low (+1/-1)")
HIGH_IMPACT = ReputationTier("high_impact", 10, "High Impact (+10/-10)", "high (+10/-10)")

REPUTATION_TIERS = (CANNOT_VOUCH, LOW_IMPACT, HIGH_IMPACT)


def get_reputation_tier(reputation: int) -> ReputationTier:
    """Map a reputation score to the weight its holder's vouches carry."""
    if reputation < LOW_IMPACT_THRESHOLD:
        return CANNOT_VOUCH
    if reputation < HIGH_IMPACT_THRESHOLD:
        return LOW_IMPACT
    return HIGH_IMPACT


def get_vouch_impact(reputation: int) -> int:
    return get_reputation_tier(reputation).impact


def format_tier(reputation: int) -> dict:
    """Tier info as shown on a profile."""
    tier = get_reputation_tier(reputation)
    return {
        "key": tier.key,
        "impact": tier.impact,
        "impact_text": tier.impact_text,
        "label": tier.label,
    }

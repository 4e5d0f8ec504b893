"""Cross-examination pairing rules: who challenges whom."""

from collections.abc import Iterable

from council.models import ConflictPairing

MAX_CROSS_EXAMINATIONS = 3

# Declared order is selection priority.
CONFLICT_RULES: tuple[ConflictPairing, ...] = (
    # Legal bench
    ConflictPairing("opposing-counsel", "litigation-strategist", "Adversarial stress-test of litigation strategy"),
    ConflictPairing("opposing-counsel", "ip-specialist", "Challenge IP claims and identify defense arguments"),
    ConflictPairing("research-counsel", "matter-lead", "Verify legal citations and precedent support"),
    # C-suite
    ConflictPairing("ciso", "cfo", "Security implications of financial decisions"),
    ConflictPairing("risk", "coo", "Risk assessment of operational changes"),
    ConflictPairing("cfo", "cro", "Financial viability of revenue projections"),
)


def detect_conflicts(
    present_codes: Iterable[str],
    online_codes: Iterable[str] | None = None,
    limit: int = MAX_CROSS_EXAMINATIONS,
    rules: Iterable[ConflictPairing] = CONFLICT_RULES,
) -> list[ConflictPairing]:
    """First ``limit`` rules whose challenger and target both took part and are online.

    ``online_codes`` defaults to ``present_codes``.
    """
    present = set(present_codes)
    online = present if online_codes is None else set(online_codes)
    eligible = present & online

    selected: list[ConflictPairing] = []
    for rule in rules:
        if len(selected) >= limit:
            break
        if rule.challenger_code in eligible and rule.target_code in eligible:
            selected.append(rule)
    return selected

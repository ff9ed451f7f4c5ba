"""Dashboard risk statistics."""

from heimdr.models.email import RiskLevel


def _percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(part * 100 / total + 0.5)


def compute_risk_stats(counts: dict[str, int], pending: int = 0) -> dict:
    """
    Aggregate per-level counts into dashboard numbers.

    Args:
        counts: {"Lav": n, "Medium": n, "Høy": n}
        pending: Emails still waiting for analysis

    Returns:
        Counts, total and whole-number percentages per level
    """
    high = counts.get(RiskLevel.HIGH.value, 0)
    medium = counts.get(RiskLevel.MEDIUM.value, 0)
    low = counts.get(RiskLevel.LOW.value, 0)
    total = high + medium + low

    return {
        "high": high,
        "medium": medium,
        "low": low,
        "total_analyzed": total,
        "percent_high": _percent(high, total),
        "percent_medium": _percent(medium, total),
        "percent_low": _percent(low, total),
        "pending": pending,
    }

"""Scoring system for audit findings."""

from collections import Counter
from typing import Dict, Iterable, List, Optional

from .issues import Issue, Severity


DEFAULT_GLOBAL_PENALTIES = {
    "critical": 15,
    "high": 8,
    "medium": 3,
    "low": 1,
}

DEFAULT_CATEGORY_PENALTIES = {
    "critical": 20,
    "high": 10,
    "medium": 5,
    "low": 2,
}

SCORED_CATEGORIES = ("security", "quality", "typing", "dependencies", "maintenance")

MAX_SCORE = 100


class AuditScorer:
    """
    Calculate 0-100 health scores from a list of issues.

    Scores only depend on the multiset of severities, so they are independent
    of issue order and of which tool reported what.
    """

    def __init__(self,
                 global_penalties: Optional[Dict[str, int]] = None,
                 category_penalties: Optional[Dict[str, int]] = None,
                 categories: Iterable[str] = SCORED_CATEGORIES):
        self.global_penalties = {**DEFAULT_GLOBAL_PENALTIES, **(global_penalties or {})}
        self.category_penalties = {**DEFAULT_CATEGORY_PENALTIES, **(category_penalties or {})}
        self.categories = tuple(categories)

    def calculate_scores(self, issues: List[Issue]) -> Dict[str, int]:
        """Calculate global and per-category scores.

        Returns:
            Dictionary with a ``global`` entry and one entry per scored category
        """
        scores = {"global": self._score(issues, self.global_penalties)}
        for category in self.categories:
            scoped = [i for i in issues if i.category == category]
            scores[category] = self._score(scoped, self.category_penalties)
        return scores

    def calculate_category_score(self, issues: List[Issue], category: str) -> int:
        return self._score([i for i in issues if i.category == category], self.category_penalties)

    def _score(self, issues: List[Issue], penalties: Dict[str, int]) -> int:
        deduction = sum(penalties.get(issue.severity.value, 0) for issue in issues)
        return max(MAX_SCORE - deduction, 0)

    def get_severity_distribution(self, issues: List[Issue]) -> Dict[str, int]:
        counts = Counter(issue.severity.value for issue in issues)
        return {severity.value: counts.get(severity.value, 0) for severity in Severity}

    def summarize(self,
                  issues: List[Issue],
                  tools_available: int = 0,
                  tools_run: int = 0) -> Dict[str, int]:
        """Counts by severity and by auto-fixability."""
        summary = {"total_issues": len(issues)}
        summary.update(self.get_severity_distribution(issues))
        summary["auto_fixable"] = sum(1 for i in issues if i.auto_fixable)
        summary["tools_available"] = tools_available
        summary["tools_run"] = tools_run
        return summary

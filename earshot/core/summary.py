"""
Ranking and formatting of classification results for display.
"""

from typing import Iterable, List

from earshot.core.models import Categories, Category, Classifications

# Fixed by design: the display only ever shows the top five labels that
# score strictly above 0.3.
PROBABILITY_THRESHOLD = 0.3
MAX_RESULTS = 5

LISTENING_PLACEHOLDER = "Listening for sounds...\nMake sure there's enough volume"


def flatten(classifications: Iterable[Classifications]) -> Categories:
    """Merge the categories of every classification group into one list."""
    return [category for group in classifications for category in group.categories]


def rank(
    categories: Iterable[Category],
    threshold: float = PROBABILITY_THRESHOLD,
    max_results: int = MAX_RESULTS,
) -> Categories:
    """
    Keep categories scoring above ``threshold``, best first.

    Ties on score are broken by label so the order is deterministic.

    Args:
        categories: Categories in any order
        threshold: Exclusive lower bound on score
        max_results: Maximum number of categories returned

    Returns:
        At most ``max_results`` categories, sorted by descending score
    """
    kept = [category for category in categories if category.score > threshold]
    kept.sort(key=lambda category: (-category.score, category.label))
    return kept[:max(max_results, 0)]


def summarize(classifications: Iterable[Classifications]) -> Categories:
    """Flatten, filter and rank the output of one classify() call."""
    return rank(flatten(classifications))


def format_summary(categories: List[Category]) -> str:
    """
    Render ranked categories for the display.

    Each entry becomes ``"<label>: <score>"`` with two decimals, one per
    line. An empty list renders as the listening placeholder so the
    display is never blank.
    """
    if not categories:
        return LISTENING_PLACEHOLDER
    return "".join(f"{category.label}: {category.score:.2f}\n" for category in categories)

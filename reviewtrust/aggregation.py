"""Rating histogram and average for a set of reviews."""

import math
from dataclasses import asdict, dataclass, field
from typing import Iterable

STAR_VALUES = (5, 4, 3, 2, 1)


@dataclass
class RatingBucket:
    stars: int
    count: int = 0
    percentage: int = 0
    fill: int = 0

    @property
    def label(self) -> str:
        return f"{self.stars} star" if self.stars == 1 else f"{self.stars} stars"


@dataclass
class RatingDistribution:
    buckets: list[RatingBucket] = field(default_factory=list)
    average: float = 0.0
    total: int = 0

    def bucket(self, stars: int) -> RatingBucket:
        for b in self.buckets:
            if b.stars == stars:
                return b
        raise KeyError(stars)

    def to_dict(self) -> dict:
        return {
            "average": self.average,
            "total": self.total,
            "buckets": [dict(asdict(b), label=b.label) for b in self.buckets],
        }


def _rating_of(review):
    if isinstance(review, dict):
        return review.get("rating")
    if isinstance(review, int):
        return review
    return getattr(review, "rating", None)


def half_up(value: float) -> int:
    """Round halves away from zero for positive values (12.5 -> 13)."""
    return int(math.floor(value + 0.5))


def valid_rating(value) -> bool:
    # bool is an int subclass; True must not count as a 1-star rating
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def compute_distribution(reviews: Iterable) -> RatingDistribution:
    """Build the 5-bucket rating histogram shown next to a review list.

    Buckets are ordered 5 stars first. Each percentage is rounded
    independently, so the sum may be off 100 by rounding. Ratings outside 1..5
    are skipped rather than rejected.

    Args:
        reviews: review rows (ORM objects, dicts with a "rating" key, or bare ints).

    Returns:
        RatingDistribution with an unrounded average; all zeros for no reviews.
    """
    counts = {stars: 0 for stars in STAR_VALUES}
    for review in reviews:
        rating = _rating_of(review)
        if valid_rating(rating):
            counts[rating] += 1

    total = sum(counts.values())
    if total == 0:
        return RatingDistribution(buckets=[RatingBucket(stars=s) for s in STAR_VALUES])

    buckets = []
    for stars in STAR_VALUES:
        pct = half_up(counts[stars] / total * 100)
        buckets.append(RatingBucket(stars=stars, count=counts[stars], percentage=pct, fill=pct))
    average = sum(stars * n for stars, n in counts.items()) / total
    return RatingDistribution(buckets=buckets, average=average, total=total)


def rounded_average(total_rating: float, count: int) -> float:
    """Average rounded to one decimal, the way listing cards display it."""
    if count <= 0:
        return 0
    return half_up(total_rating / count * 10) / 10

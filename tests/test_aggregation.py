import pytest

from reviewtrust.aggregation import compute_distribution, half_up, rounded_average


def test_empty_distribution_is_all_zero():
    dist = compute_distribution([])
    assert [b.stars for b in dist.buckets] == [5, 4, 3, 2, 1]
    assert all(b.percentage == 0 and b.fill == 0 for b in dist.buckets)
    assert dist.average == 0
    assert dist.total == 0


def test_example_distribution():
    dist = compute_distribution([{"rating": 5}, {"rating": 5}, {"rating": 3}, {"rating": 1}])
    assert dist.bucket(5).percentage == 50
    assert dist.bucket(3).percentage == 25
    assert dist.bucket(1).percentage == 25
    assert dist.bucket(4).percentage == 0
    assert dist.bucket(2).percentage == 0
    assert dist.average == 3.5
    assert dist.total == 4


@pytest.mark.parametrize("ratings", [
    [1, 2, 3],
    [5, 4, 4, 2, 1, 1, 3],
    [5] * 7 + [1] * 2,
    [2, 3],
])
def test_percentages_sum_close_to_hundred(ratings):
    dist = compute_distribution(ratings)
    total = sum(b.percentage for b in dist.buckets)
    assert abs(total - 100) <= len(dist.buckets)


def test_fill_matches_percentage():
    dist = compute_distribution([4, 4, 5])
    for bucket in dist.buckets:
        assert bucket.fill == bucket.percentage


def test_out_of_range_and_non_integer_ratings_are_ignored():
    dist = compute_distribution([5, 0, 6, None, "4", True, 3])
    assert dist.total == 2
    assert dist.average == 4


def test_orm_like_objects_are_accepted():
    class Row:
        def __init__(self, rating):
            self.rating = rating

    dist = compute_distribution([Row(2), Row(4)])
    assert dist.average == 3
    assert dist.bucket(2).percentage == 50


def test_halves_round_up():
    assert half_up(12.5) == 13
    assert half_up(33.33) == 33
    # one of eight reviews is 12.5%
    dist = compute_distribution([5] * 7 + [1])
    assert dist.bucket(1).percentage == 13
    assert dist.bucket(5).percentage == 88


def test_rounded_average_one_decimal():
    assert rounded_average(14, 4) == 3.5
    assert rounded_average(13, 3) == 4.3
    assert rounded_average(0, 0) == 0


def test_to_dict_has_labels():
    payload = compute_distribution([5]).to_dict()
    assert payload["buckets"][0]["label"] == "5 stars"
    assert payload["buckets"][-1]["label"] == "1 star"
    assert payload["total"] == 1

from unittest.mock import patch

from django.test import TestCase

from couriers.models import DeliveryPersonProfile
from services.matching import ranking, rank_candidates
from .helpers import make_client, make_courier, make_order


class RankCandidatesTests(TestCase):

    def setUp(self):
        self.order = make_order(make_client())

    def _profiles(self):
        return DeliveryPersonProfile.objects.select_related("user").all()

    def test_lower_priority_score_wins_over_distance(self):
        make_courier("near_but_penalized", km_north=2, priority_score=10)
        far_clean = make_courier("far_but_clean", km_north=8, priority_score=5)

        ranked = list(rank_candidates(self.order, self._profiles()))

        self.assertEqual(ranked[0].user_id, far_clean.pk)
        self.assertAlmostEqual(ranked[0].distance_km, 8, delta=0.1)

    def test_distance_breaks_priority_ties_then_id(self):
        a = make_courier("a", km_north=3)
        b = make_courier("b", km_north=1)
        c = make_courier("c", km_north=3)

        ranked = [candidate.user_id for candidate in rank_candidates(self.order, self._profiles())]

        self.assertEqual(ranked, [b.pk, a.pk, c.pk])

    def test_max_distance_drops_far_candidates(self):
        make_courier("too_far", km_north=15)
        near = make_courier("near", km_north=4)

        ranked = list(rank_candidates(self.order, self._profiles(), max_distance_km=10))

        self.assertEqual([candidate.user_id for candidate in ranked], [near.pk])

    def test_each_call_starts_over(self):
        first = make_courier("first", km_north=1)
        make_courier("second", km_north=2)

        iterator = rank_candidates(self.order, self._profiles())
        next(iterator)

        self.assertEqual(next(rank_candidates(self.order, self._profiles())).user_id, first.pk)

    def test_order_without_coordinates_ranks_by_score(self):
        order = make_order(self.order.client, origin_latitude=None, origin_longitude=None)
        make_courier("penalized", km_north=1, priority_score=5)
        clean = make_courier("clean", km_north=9)

        ranked = list(rank_candidates(order, self._profiles(), max_distance_km=10))

        self.assertEqual(ranked[0].user_id, clean.pk)
        self.assertIsNone(ranked[0].distance_km)
        self.assertEqual(len(ranked), 2)

    def test_empty_pool(self):
        self.assertEqual(list(rank_candidates(self.order, [])), [])

    def test_stops_at_first_priority_band(self):
        best = make_courier("best", km_north=5)
        for index in range(3):
            make_courier(f"penalized_{index}", km_north=1, priority_score=10)

        with patch.object(ranking, "distance_to_pickup", wraps=ranking.distance_to_pickup) as measured:
            first = next(rank_candidates(self.order, self._profiles()))

        self.assertEqual(first.user_id, best.pk)
        self.assertEqual(measured.call_count, 1)

    def test_plain_iterables_are_ranked_like_querysets(self):
        a = make_courier("a", km_north=3, priority_score=5)
        b = make_courier("b", km_north=6)
        c = make_courier("c", km_north=1, priority_score=5)

        ranked = [candidate.user_id for candidate in rank_candidates(self.order, list(self._profiles()))]

        self.assertEqual(ranked, [b.pk, c.pk, a.pk])

from datetime import timedelta

from django.test import SimpleTestCase
from django.utils import timezone

from common.utils import calculate_distance, detect_fake_gps


class GeoUtilsTests(SimpleTestCase):

	def test_one_hundredth_of_a_degree_of_latitude(self):
		self.assertAlmostEqual(calculate_distance(-23.55, -46.63, -23.56, -46.63), 1.112, places=2)

	def test_same_point_is_zero(self):
		self.assertEqual(calculate_distance(10, 10, 10, 10), 0)

	def test_walking_pace_is_plausible(self):
		now = timezone.now()
		is_fake, reason = detect_fake_gps(-23.55, -46.63, now - timedelta(minutes=1), -23.551, -46.63, now)

		self.assertFalse(is_fake)
		self.assertEqual(reason, "")

	def test_impossible_speed_is_flagged(self):
		now = timezone.now()
		is_fake, reason = detect_fake_gps(-23.55, -46.63, now - timedelta(seconds=60), -23.00, -46.63, now)

		self.assertTrue(is_fake)
		self.assertIn("km/h", reason)

	def test_no_history_is_plausible(self):
		self.assertEqual(detect_fake_gps(None, None, None, 1, 1, timezone.now()), (False, ""))

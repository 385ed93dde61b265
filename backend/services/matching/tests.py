import itertools
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from accounts.models import User
from common.utils.geo import calculate_distance
from offers.models import Offer
from offers.tests import make_offer, make_user
from services.offer_management.exceptions import (
	InvalidLocationError,
	OfferValidationError,
	SearchTimeoutError,
)
from .nearby_search import build_search_query, find_nearby_offers, rank_matches


RIDER = [-74.006, 40.7128]


def search(**kwargs):
	kwargs.setdefault('location', RIDER)
	return find_nearby_offers(build_search_query(**kwargs))


def ids(result):
	return [offer.id for offer, _ in result.matches]


class BuildSearchQueryTests(TestCase):
	def test_invalid_locations_are_rejected(self):
		for location in (None, 'abc', [200, 0], [0, -91], [1], [None, None]):
			with self.assertRaises(InvalidLocationError, msg=location):
				build_search_query(location)

	def test_defaults(self):
		query = build_search_query(RIDER)

		self.assertEqual(query.min_distance, 0)
		self.assertEqual(query.max_distance, 10000)
		self.assertEqual(query.sort_by, 'distance')
		self.assertEqual(query.sort_order, 'asc')
		self.assertEqual((query.page, query.limit), (1, 20))

	def test_unknown_sort_falls_back_to_distance(self):
		query = build_search_query(RIDER, sort_by='popularity', sort_order='sideways')

		self.assertEqual(query.sort_by, 'distance')
		self.assertEqual(query.sort_order, 'asc')

	def test_limit_is_capped(self):
		self.assertEqual(build_search_query(RIDER, limit=500).limit, 50)

	def test_bad_numbers_are_validation_errors(self):
		bad = [
			{'min_distance': -1},
			{'max_distance': 0},
			{'max_distance': 250000},
			{'min_distance': 5000, 'max_distance': 1000},
			{'page': 0},
			{'limit': 0},
			{'filters': {'vehicle_type': 'truck'}},
			{'filters': {'min_payment': 30, 'max_payment': 10}},
			{'filters': {'max_dimensions': (10, 10)}},
			{'filters': {'colour': 'red'}},
		]
		for kwargs in bad:
			with self.assertRaises(OfferValidationError, msg=kwargs):
				build_search_query(RIDER, **kwargs)

	def test_nearby_locations_share_cache_params(self):
		a = build_search_query([-74.0060001, 40.71280004], filters={'min_payment': 10})
		b = build_search_query([-74.006, 40.7128], filters={'min_payment': Decimal('10')})

		self.assertEqual(a.cache_params(), b.cache_params())

	def test_different_filters_change_cache_params(self):
		a = build_search_query(RIDER, filters={'fragile': True})
		b = build_search_query(RIDER, filters={'fragile': False})

		self.assertNotEqual(a.cache_params(), b.cache_params())


class FindNearbyOffersTests(TestCase):
	def setUp(self):
		self.business = make_user('bakery', User.ROLE_BUSINESS)
		self.rider = make_user('rider_a', User.ROLE_RIDER)
		# ~1.1km, ~3.3km and ~11km north of the rider
		self.near = make_offer(self.business, lat=40.7228)
		self.mid = make_offer(self.business, lat=40.7428, payment_amount=Decimal('40.00'))
		self.far = make_offer(self.business, lat=40.8128)

	def test_no_offers_nearby_is_empty(self):
		result = search(location=[2.3522, 48.8566])

		self.assertEqual(result.matches, [])
		self.assertEqual(result.total, 0)
		self.assertEqual(result.as_dict()['offers'], [])
		self.assertEqual(result.as_dict()['pagination']['totalPages'], 0)

	def test_radius_and_distance_order(self):
		result = search()

		self.assertEqual(ids(result), [self.near.id, self.mid.id])
		distances = [d for _, d in result.matches]
		self.assertEqual(distances, sorted(distances))
		self.assertTrue(all(d <= 10000 for d in distances))

	def test_min_distance_excludes_closer_offers(self):
		self.assertEqual(ids(search(min_distance=2000)), [self.mid.id])

	def test_window_bounds_are_inclusive(self):
		exact = search(max_distance=20000).matches[1][1]

		self.assertEqual(ids(search(min_distance=exact, max_distance=exact)), [self.mid.id])

	def test_offer_just_inside_wide_radius_due_north(self):
		edge = make_offer(self.business, lat=41.611222)
		self.assertLess(calculate_distance(RIDER[1], RIDER[0], 41.611222, RIDER[0]), 100000)

		result = search(max_distance=100000)

		self.assertIn(edge.id, ids(result))
		self.assertEqual(result.total, 4)

	def test_offer_just_inside_wide_radius_at_high_latitude(self):
		rider = [10.0, 70.0]
		edge = make_offer(self.business, lng=12.628, lat=70.0)
		self.assertLess(calculate_distance(70.0, 10.0, 70.0, 12.628), 100000)

		result = search(location=rider, max_distance=100000)

		self.assertEqual(ids(result), [edge.id])
		self.assertEqual(result.total, 1)

	def test_only_open_offers_are_returned(self):
		Offer.objects.filter(pk=self.near.pk).update(status='accepted', accepted_by=self.rider)

		self.assertEqual(ids(search()), [self.mid.id])

	def test_bike_capacity(self):
		Offer.objects.all().delete()
		light = make_offer(self.business, package_weight=3)
		heavy = make_offer(self.business, package_weight=8)
		bulky = make_offer(self.business, package_weight=1, package_length=50, package_width=50, package_height=30)
		unknown = make_offer(self.business, package_weight=None)

		result = search(filters={'vehicle_type': 'bike'})

		self.assertEqual(set(ids(result)), {light.id, unknown.id})
		self.assertNotIn(heavy.id, ids(result))
		self.assertNotIn(bulky.id, ids(result))

	def test_max_weight_keeps_unweighed_offers(self):
		unknown = make_offer(self.business, package_weight=None)
		Offer.objects.filter(pk=self.mid.pk).update(package_weight=12)

		self.assertEqual(set(ids(search(filters={'max_weight': 5}))), {self.near.id, unknown.id})

	def test_max_dimensions(self):
		Offer.objects.filter(pk=self.near.pk).update(package_length=40, package_width=10, package_height=10)

		self.assertEqual(ids(search(filters={'max_dimensions': (30, 30, 30)})), [self.mid.id])

	def test_payment_fragile_and_method_filters(self):
		Offer.objects.filter(pk=self.mid.pk).update(is_fragile=True, payment_method='cash')

		self.assertEqual(ids(search(filters={'min_payment': 30})), [self.mid.id])
		self.assertEqual(ids(search(filters={'max_payment': 30})), [self.near.id])
		self.assertEqual(ids(search(filters={'fragile': True})), [self.mid.id])
		self.assertEqual(ids(search(filters={'payment_method': 'card'})), [self.near.id])

	def test_pickup_window_overlap_and_deliver_by(self):
		now = timezone.now()
		Offer.objects.filter(pk=self.near.pk).update(
			pickup_available_from=now + timedelta(hours=5),
			pickup_available_until=now + timedelta(hours=6),
		)
		Offer.objects.filter(pk=self.mid.pk).update(deliver_by=now + timedelta(hours=2))

		window = {'available_from': now, 'available_until': now + timedelta(hours=1)}
		self.assertEqual(ids(search(filters=window)), [self.mid.id])
		self.assertEqual(ids(search(filters={'deliver_by': now + timedelta(hours=3)})), [self.mid.id])

	def test_business_filter(self):
		other = make_user('florist', User.ROLE_BUSINESS)
		theirs = make_offer(other)

		self.assertEqual(ids(search(filters={'business_id': other.id})), [theirs.id])

	def test_sort_by_payment_desc(self):
		self.assertEqual(ids(search(sort_by='payment', sort_order='desc')), [self.mid.id, self.near.id])

	def test_equal_keys_keep_id_order_both_ways(self):
		twin = make_offer(self.business, lat=40.7228)

		asc = ids(search(sort_by='payment', sort_order='asc'))
		desc = ids(search(sort_by='payment', sort_order='desc'))

		self.assertEqual(asc, [self.near.id, twin.id, self.mid.id])
		self.assertEqual(desc, [self.mid.id, self.near.id, twin.id])

	def test_missing_sort_values_go_last(self):
		unweighed = make_offer(self.business, lat=40.7128, package_weight=None)
		Offer.objects.filter(pk=self.mid.pk).update(package_weight=1)

		self.assertEqual(ids(search(sort_by='weight', sort_order='asc'))[-1], unweighed.id)
		self.assertEqual(ids(search(sort_by='weight', sort_order='desc'))[-1], unweighed.id)

	def test_pagination(self):
		for _ in range(3):
			make_offer(self.business, lat=40.7328)

		result = search(page=2, limit=2)
		pagination = result.as_dict()['pagination']

		self.assertEqual(result.total, 5)
		self.assertEqual(len(result.matches), 2)
		self.assertEqual(pagination['totalPages'], 3)
		self.assertTrue(pagination['hasNext'])
		self.assertTrue(pagination['hasPrev'])
		self.assertEqual(search(page=4, limit=2).matches, [])

	def test_search_time_bound(self):
		ticks = itertools.count(step=10)
		query = build_search_query(RIDER)

		with self.assertRaises(SearchTimeoutError):
			find_nearby_offers(query, timeout=1, clock=lambda: next(ticks))

	def test_rank_matches_handles_empty(self):
		self.assertEqual(rank_matches([], 'distance', 'asc'), [])

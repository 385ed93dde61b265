from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import MagicMock, Mock

from django.test import SimpleTestCase, TestCase

from accounts.identity import actor_from_user
from accounts.models import User
from offers.models import Offer
from offers.signals import KIND_TRANSITION, OfferMutation
from offers.tests import fresh_cache, make_offer, make_user
from services import offer_management as dispatch
from services.matching import build_search_query
from . import keys
from .backends import MISSING, DummyCacheBackend, LocMemCacheBackend, RedisCacheBackend
from .coherency import OfferCacheCoherency, build_backend


class FakeClock:
	def __init__(self, now=1000.0):
		self.now = now

	def __call__(self):
		return self.now


class CacheKeyTests(SimpleTestCase):
	def test_parameter_order_does_not_matter(self):
		a = keys.nearby_key({'lng': -74.006, 'lat': 40.7128, 'filters': {'fragile': True, 'max_weight': 5}})
		b = keys.nearby_key({'filters': {'max_weight': 5, 'fragile': True}, 'lat': 40.7128, 'lng': -74.006})

		self.assertEqual(a, b)
		self.assertTrue(a.startswith(keys.NEARBY_PREFIX))

	def test_equal_numbers_share_a_key(self):
		self.assertEqual(
			keys.nearby_key({'min_payment': Decimal('10.00'), 'radius': 5000.0}),
			keys.nearby_key({'min_payment': 10, 'radius': 5000}),
		)

	def test_any_differing_value_changes_the_key(self):
		base = {'lng': -74.006, 'lat': 40.7128, 'page': 1}

		self.assertNotEqual(keys.nearby_key(base), keys.nearby_key({**base, 'page': 2}))
		self.assertNotEqual(keys.nearby_key(base), keys.nearby_key({**base, 'lat': 40.7129}))

	def test_datetimes_are_canonical(self):
		when = datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc)

		self.assertEqual(
			keys.canonical_json({'deliver_by': when}),
			'{"deliver_by":"2024-05-01T12:00:00+00:00"}',
		)

	def test_same_instant_in_other_offset_shares_a_key(self):
		utc = datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc)
		new_york = datetime(2024, 5, 1, 8, 0, tzinfo=dt_timezone(timedelta(hours=-4)))

		self.assertEqual(keys.nearby_key({'deliver_by': utc}), keys.nearby_key({'deliver_by': new_york}))
		self.assertEqual(
			keys.nearby_key(build_search_query([-74.006, 40.7128], filters={'deliver_by': utc}).cache_params()),
			keys.nearby_key(build_search_query([-74.006, 40.7128], filters={'deliver_by': new_york}).cache_params()),
		)
		self.assertNotEqual(
			keys.nearby_key({'deliver_by': utc}),
			keys.nearby_key({'deliver_by': utc + timedelta(minutes=1)}),
		)

	def test_email_keys_are_normalized(self):
		self.assertEqual(keys.auth_email_key(' Rider@Example.COM '), 'user:auth:email:rider@example.com')


class LocMemBackendTests(SimpleTestCase):
	def setUp(self):
		self.clock = FakeClock()
		self.backend = LocMemCacheBackend(clock=self.clock)

	def test_entries_expire(self):
		self.backend.set('business:offers:1', [1, 2], ttl=60)
		self.assertEqual(self.backend.get('business:offers:1'), [1, 2])

		self.clock.now += 61
		self.assertIs(self.backend.get('business:offers:1'), MISSING)

	def test_pattern_delete(self):
		self.backend.set('offers:nearby:aaa', 1, 60)
		self.backend.set('offers:nearby:bbb', 2, 60)
		self.backend.set('user:auth:email:a@example.com', 3, 60)

		self.assertEqual(self.backend.delete_pattern('offers:nearby:*'), 2)
		self.assertEqual(list(self.backend.keys()), ['user:auth:email:a@example.com'])

	def test_purge_expired_only_drops_dead_entries(self):
		self.backend.set('short', 1, 10)
		self.backend.set('long', 2, 100)
		self.clock.now += 50

		self.assertEqual(self.backend.purge_expired(deadline=float('inf')), 1)
		self.assertEqual(list(self.backend.keys()), ['long'])

	def test_purge_respects_deadline(self):
		self.backend.set('short', 1, 10)
		self.clock.now += 50

		self.assertEqual(self.backend.purge_expired(deadline=0), 0)


class RedisBackendTests(SimpleTestCase):
	def setUp(self):
		self.client = MagicMock()
		self.backend = RedisCacheBackend(redis_client=self.client, key_prefix='lastmile:')

	def test_set_uses_prefix_and_ttl(self):
		self.backend.set('rider:offers:7', {'a': 1}, 300)

		self.client.setex.assert_called_once_with('lastmile:rider:offers:7', 300, '{"a":1}')

	def test_get_miss(self):
		self.client.get.return_value = None

		self.assertIs(self.backend.get('rider:offers:7'), MISSING)

	def test_pattern_delete_scans_prefixed_keys(self):
		self.client.scan_iter.return_value = iter(['lastmile:offers:nearby:a', 'lastmile:offers:nearby:b'])
		self.client.delete.return_value = 2

		self.assertEqual(self.backend.delete_pattern('offers:nearby:*'), 2)
		self.client.scan_iter.assert_called_once_with(match='lastmile:offers:nearby:*', count=500)
		self.client.delete.assert_called_once_with('lastmile:offers:nearby:a', 'lastmile:offers:nearby:b')


class OfferCacheCoherencyTests(SimpleTestCase):
	def setUp(self):
		self.clock = FakeClock()
		self.cache = OfferCacheCoherency(LocMemCacheBackend(clock=self.clock))

	def test_read_through_computes_once(self):
		compute = Mock(return_value=['offer'])

		self.assertEqual(self.cache.business_offers(1, compute), ['offer'])
		self.assertEqual(self.cache.business_offers(1, compute), ['offer'])

		compute.assert_called_once()
		stats = self.cache.stats()
		self.assertEqual((stats['hits'], stats['misses']), (1, 1))
		self.assertEqual(stats['hit_rate'], 50.0)

	def test_expired_entry_is_recomputed(self):
		compute = Mock(side_effect=[1, 2])

		self.cache.rider_dashboard(3, compute)
		self.clock.now += 10_000

		self.assertEqual(self.cache.rider_dashboard(3, compute), 2)

	def test_unknown_identity_is_not_cached(self):
		compute = Mock(return_value=None)

		self.cache.identity_by_email('ghost@example.com', compute)
		self.cache.identity_by_email('ghost@example.com', compute)

		self.assertEqual(compute.call_count, 2)

	def test_mutation_drops_related_entries_only(self):
		for key in ('offers:nearby:one', 'offers:nearby:two', 'business:offers:1', 'business:stats:1',
					'rider:offers:5', 'rider:stats:5', 'business:offers:2', 'user:auth:email:a@example.com'):
			self.cache.set(key, 'x', 300)

		self.cache.handle_offer_mutation(OfferMutation(
			offer_id=9, business_id=1, rider_id=5,
			previous_status='open', status='accepted', kind=KIND_TRANSITION,
		))

		self.assertEqual(
			sorted(self.cache.backend.keys()),
			['business:offers:2', 'user:auth:email:a@example.com'],
		)

	def test_mutation_without_rider(self):
		self.cache.set('rider:offers:5', 'x', 300)
		self.cache.set('business:offers:1', 'x', 300)

		self.cache.handle_offer_mutation(OfferMutation(9, 1, None, None, 'open', 'created'))

		self.assertEqual(list(self.cache.backend.keys()), ['rider:offers:5'])

	def test_identity_invalidation(self):
		self.cache.set(keys.auth_email_key('old@example.com'), {'id': 1}, 300)
		self.cache.set(keys.auth_email_key('new@example.com'), {'id': 1}, 300)

		self.assertEqual(self.cache.invalidate_identity('old@example.com', 'NEW@example.com'), 2)

	def test_broken_backend_degrades_to_compute(self):
		backend = Mock(name='backend')
		backend.name = 'redis'
		backend.get.side_effect = ConnectionError('down')
		backend.set.side_effect = ConnectionError('down')
		backend.ping.side_effect = ConnectionError('down')
		cache = OfferCacheCoherency(backend)

		self.assertEqual(cache.business_offers(1, lambda: ['fresh']), ['fresh'])
		self.assertFalse(cache.healthy())
		self.assertEqual(cache.stats()['errors'], 2)

	def test_sweep_reports(self):
		self.cache.set('short', 1, 10)
		self.cache.set('long', 1, 1000)
		self.clock.now += 100

		report = self.cache.sweep(time_budget=5)

		self.assertEqual(report['removed'], 1)
		self.assertEqual(report['backend'], 'locmem')
		self.assertGreaterEqual(report['elapsed'], 0)

	def test_sweep_never_raises(self):
		backend = Mock()
		backend.name = 'redis'
		backend.purge_expired.side_effect = ConnectionError('down')

		self.assertEqual(OfferCacheCoherency(backend).sweep(1)['removed'], 0)

	def test_dummy_backend_never_hits(self):
		cache = OfferCacheCoherency(DummyCacheBackend())
		compute = Mock(return_value=1)

		cache.business_offers(1, compute)
		cache.business_offers(1, compute)

		self.assertEqual(compute.call_count, 2)

	def test_build_backend(self):
		self.assertIsInstance(build_backend('locmem'), LocMemCacheBackend)
		self.assertIsInstance(build_backend('dummy'), DummyCacheBackend)
		with self.assertRaises(ValueError):
			build_backend('memcached')


class CacheFreshnessTests(TestCase):
	"""Cached reads against the real offer store and mutation events."""

	def setUp(self):
		self.cache = fresh_cache()
		self.business = make_user('bakery', User.ROLE_BUSINESS)
		self.rider = make_user('rider_a', User.ROLE_RIDER)
		self.rider_actor = actor_from_user(self.rider)
		self.offer = make_offer(self.business)

	def _nearby_ids(self):
		result = dispatch.search_nearby(self.rider_actor, [-74.006, 40.7128])
		return [o['id'] for o in result['offers']]

	def test_nearby_search_is_served_from_cache(self):
		self.assertEqual(self._nearby_ids(), [self.offer.pk])

		# A write that bypasses the mutation path is invisible until expiry
		Offer.objects.filter(pk=self.offer.pk).update(title='Renamed')
		result = dispatch.search_nearby(self.rider_actor, [-74.006, 40.7128])

		self.assertEqual(result['offers'][0]['title'], 'Box of pastries')
		self.assertEqual(self.cache.stats()['hits'], 1)

	def test_claim_clears_cached_searches(self):
		self.assertEqual(self._nearby_ids(), [self.offer.pk])

		dispatch.accept_offer(self.rider_actor, self.offer.pk)

		self.assertEqual(self._nearby_ids(), [])

	def test_new_offer_clears_cached_searches(self):
		self._nearby_ids()

		created = dispatch.create_offer(actor_from_user(self.business), {
			'title': 'Second box',
			'pickup_address': '2 Pickup St',
			'pickup_coordinates': [-74.006, 40.7138],
			'delivery_address': '9 Dropoff Ave',
			'delivery_coordinates': [-73.99, 40.73],
			'payment_amount': Decimal('12.00'),
		})

		self.assertIn(created.pk, self._nearby_ids())

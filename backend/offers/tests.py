from decimal import Decimal
from unittest.mock import Mock, patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.identity import actor_from_user
from accounts.models import User
from services import offer_management as dispatch
from services.caching import LocMemCacheBackend, OfferCacheCoherency, set_offer_cache
from services.offer_management import (
	ForbiddenActionError,
	GeocodingFailedError,
	InvalidTransitionError,
	OfferAlreadyClaimedError,
	transition_offer,
	valid_next_statuses,
)
from realtime.notifications import counterparty_for
from .models import Offer
from . import store, views


RIDER_LOCATION = [-74.006, 40.7128]


def make_user(username, role, verified=True, **extra):
	if role == User.ROLE_RIDER:
		extra.setdefault('vehicle_type', 'bike')
	else:
		extra.setdefault('business_name', username.title())
	return User.objects.create_user(
		username=username,
		email=f'{username}@example.com',
		password='pass1234',
		role=role,
		is_verified=verified,
		**extra
	)


def make_offer(business, lng=-74.006, lat=40.7228, **overrides):
	fields = {
		'title': 'Box of pastries',
		'pickup_address': '1 Pickup St',
		'pickup_longitude': Decimal(str(round(lng, 6))),
		'pickup_latitude': Decimal(str(round(lat, 6))),
		'delivery_address': '9 Dropoff Ave',
		'delivery_longitude': Decimal('-73.990000'),
		'delivery_latitude': Decimal('40.730000'),
		'package_weight': 3,
		'payment_amount': Decimal('25.00'),
	}
	fields.update(overrides)
	return Offer.objects.create(business=business, **fields)


def fresh_cache():
	cache = OfferCacheCoherency(LocMemCacheBackend())
	set_offer_cache(cache)
	return cache


class OfferStateMachineTests(TestCase):
	def setUp(self):
		fresh_cache()
		self.business = make_user('bakery', User.ROLE_BUSINESS)
		self.rider = make_user('rider_a', User.ROLE_RIDER)
		self.other_rider = make_user('rider_b', User.ROLE_RIDER)
		self.offer = make_offer(self.business)

		self.business_actor = actor_from_user(self.business)
		self.rider_actor = actor_from_user(self.rider)

	def _advance(self, *targets, actor=None):
		offer = Offer.objects.get(pk=self.offer.pk)
		for target in targets:
			offer = transition_offer(offer, actor or self.rider_actor, target).offer
		return offer

	def test_valid_next_statuses_follow_table(self):
		self.assertEqual(valid_next_statuses('open'), ['accepted'])
		self.assertEqual(valid_next_statuses('accepted'), ['picked_up', 'cancelled'])
		self.assertEqual(valid_next_statuses('picked_up'), ['in_transit', 'cancelled'])
		self.assertEqual(valid_next_statuses('in_transit'), ['delivered', 'cancelled'])
		self.assertEqual(valid_next_statuses('delivered'), ['completed'])
		self.assertEqual(valid_next_statuses('completed'), [])
		self.assertEqual(valid_next_statuses('cancelled'), [])

	def test_claim_binds_rider_and_appends_history(self):
		offer = self._advance('accepted')

		self.assertEqual(offer.status, 'accepted')
		self.assertEqual(offer.accepted_by_id, self.rider.id)
		self.assertIsNotNone(offer.accepted_at)
		self.assertEqual(offer.version, 1)
		self.assertEqual(len(offer.status_history), 1)
		entry = offer.status_history[0]
		self.assertEqual(entry['status'], 'accepted')
		self.assertEqual(entry['actor'], self.rider.id)
		self.assertIsNone(entry['location'])

	def test_only_one_of_many_stale_claims_wins(self):
		riders = [self.rider, self.other_rider] + [
			make_user(f'rider_{i}', User.ROLE_RIDER) for i in range(3)
		]
		# Every rider read the offer while it was still open
		snapshots = [Offer.objects.get(pk=self.offer.pk) for _ in riders]

		winners, losers = [], []
		for rider, snapshot in zip(riders, snapshots):
			try:
				transition_offer(snapshot, actor_from_user(rider), 'accepted')
				winners.append(rider.id)
			except OfferAlreadyClaimedError:
				losers.append(rider.id)

		self.assertEqual(len(winners), 1)
		self.assertEqual(len(losers), len(riders) - 1)
		offer = Offer.objects.get(pk=self.offer.pk)
		self.assertEqual(offer.accepted_by_id, winners[0])
		self.assertEqual(len(offer.status_history), 1)

	def test_accepting_an_accepted_offer_is_already_claimed(self):
		self._advance('accepted')
		offer = Offer.objects.get(pk=self.offer.pk)

		with self.assertRaises(OfferAlreadyClaimedError):
			transition_offer(offer, actor_from_user(self.other_rider), 'accepted')

	def test_full_lifecycle_keeps_history_in_step(self):
		offer = self._advance('accepted', 'picked_up', 'in_transit', 'delivered')
		offer = transition_offer(offer, self.business_actor, 'completed').offer

		self.assertEqual(offer.status, 'completed')
		self.assertEqual(len(offer.status_history), 5)
		self.assertEqual(offer.status_history[-1]['status'], offer.status)
		self.assertEqual(
			[e['status'] for e in offer.status_history],
			['accepted', 'picked_up', 'in_transit', 'delivered', 'completed'],
		)
		for field in ('accepted_at', 'picked_up_at', 'in_transit_at', 'delivered_at', 'completed_at'):
			self.assertIsNotNone(getattr(offer, field), field)
		self.assertIsNone(offer.cancelled_at)

	def test_completing_in_transit_offer_reports_valid_next_states(self):
		offer = self._advance('accepted', 'picked_up', 'in_transit')

		with self.assertRaises(InvalidTransitionError) as ctx:
			transition_offer(offer, self.business_actor, 'completed')

		self.assertEqual(ctx.exception.current_status, 'in_transit')
		self.assertEqual(ctx.exception.valid_next_states, ['delivered', 'cancelled'])
		unchanged = Offer.objects.get(pk=self.offer.pk)
		self.assertEqual(unchanged.status, 'in_transit')
		self.assertEqual(unchanged.version, offer.version)
		self.assertEqual(len(unchanged.status_history), 3)

	def test_terminal_offer_admits_no_transition(self):
		offer = self._advance('accepted')
		offer = transition_offer(offer, self.business_actor, 'cancelled').offer

		for target in ('picked_up', 'completed', 'cancelled', 'open'):
			with self.assertRaises(InvalidTransitionError):
				transition_offer(offer, self.business_actor, target)
		for rider in (self.rider, self.other_rider):
			with self.assertRaises(InvalidTransitionError) as ctx:
				transition_offer(offer, actor_from_user(rider), 'accepted')
			self.assertEqual(ctx.exception.valid_next_states, [])

		frozen = Offer.objects.get(pk=self.offer.pk)
		self.assertEqual(frozen.status, 'cancelled')
		self.assertEqual(frozen.accepted_by_id, self.rider.id)
		self.assertEqual(len(frozen.status_history), 2)

	def test_business_cannot_mark_pickup(self):
		offer = self._advance('accepted')

		with self.assertRaises(InvalidTransitionError):
			transition_offer(offer, self.business_actor, 'picked_up')

	def test_unassigned_rider_cannot_advance(self):
		offer = self._advance('accepted')

		with self.assertRaises(InvalidTransitionError):
			transition_offer(offer, actor_from_user(self.other_rider), 'picked_up')

	def test_assigned_rider_cannot_cancel(self):
		offer = self._advance('accepted')

		with self.assertRaises(InvalidTransitionError):
			transition_offer(offer, self.rider_actor, 'cancelled')

	def test_cancel_reason_is_recorded(self):
		offer = self._advance('accepted')
		offer = transition_offer(offer, self.business_actor, 'cancelled', notes='Shop closed early').offer

		self.assertEqual(offer.status, 'cancelled')
		self.assertEqual(offer.cancellation_reason, 'Shop closed early')
		self.assertEqual(offer.status_history[-1]['notes'], 'Shop closed early')
		self.assertIsNotNone(offer.cancelled_at)

	def test_stale_snapshot_of_later_transition_fails_cleanly(self):
		accepted = self._advance('accepted')
		transition_offer(accepted, self.rider_actor, 'picked_up')

		with self.assertRaises(InvalidTransitionError) as ctx:
			transition_offer(accepted, self.rider_actor, 'picked_up')

		self.assertEqual(ctx.exception.current_status, 'picked_up')
		self.assertEqual(len(Offer.objects.get(pk=self.offer.pk).status_history), 2)

	def test_history_entry_location_is_a_point(self):
		offer = self._advance('accepted')
		offer = transition_offer(offer, self.rider_actor, 'picked_up', location=[-74.0, 40.7]).offer

		self.assertEqual(
			offer.status_history[-1]['location'],
			{'type': 'Point', 'coordinates': [-74.0, 40.7]},
		)

	@patch('realtime.notifications.notify')
	def test_counterparty_is_notified(self, mock_notify):
		self._advance('accepted')

		mock_notify.assert_called_once()
		user_id, event_type, payload = mock_notify.call_args[0]
		self.assertEqual(user_id, self.business.id)
		self.assertEqual(event_type, 'offer_accepted')
		self.assertEqual(payload['offerId'], self.offer.pk)

	@patch('realtime.notifications.async_to_sync', side_effect=RuntimeError('channel layer down'))
	def test_notification_failure_keeps_transition(self, _mock):
		offer = self._advance('accepted')

		self.assertEqual(offer.status, 'accepted')
		self.assertEqual(Offer.objects.get(pk=self.offer.pk).status, 'accepted')

	def test_counterparty_for_each_status(self):
		offer = Offer(business_id=1, accepted_by_id=2, status='accepted')
		self.assertEqual(counterparty_for(offer, 2), 1)
		offer.status = 'cancelled'
		self.assertEqual(counterparty_for(offer, 1), 2)
		offer.status = 'completed'
		self.assertEqual(counterparty_for(offer, 1), 2)
		self.assertEqual(counterparty_for(offer, 2), 1)


class DispatchFacadeTests(TestCase):
	def setUp(self):
		fresh_cache()
		self.business = make_user('bakery', User.ROLE_BUSINESS)
		self.rider = make_user('rider_a', User.ROLE_RIDER)
		self.stranger = make_user('rider_b', User.ROLE_RIDER)
		self.business_actor = actor_from_user(self.business)
		self.rider_actor = actor_from_user(self.rider)

	def _fields(self, **overrides):
		fields = {
			'title': 'Flowers',
			'pickup_address': '1 Pickup St',
			'pickup_coordinates': [-74.006, 40.7128],
			'delivery_address': '9 Dropoff Ave',
			'delivery_coordinates': [-73.99, 40.73],
			'package_weight': 2,
			'payment_amount': Decimal('18.50'),
		}
		fields.update(overrides)
		return fields

	def test_create_offer_starts_open_with_estimates(self):
		offer = dispatch.create_offer(self.business_actor, self._fields())

		self.assertEqual(offer.status, 'open')
		self.assertIsNone(offer.accepted_by_id)
		self.assertEqual(offer.status_history, [])
		self.assertEqual(offer.version, 0)
		self.assertGreater(offer.estimated_distance, 0)
		self.assertGreaterEqual(offer.estimated_duration, 10)

	def test_unverified_business_cannot_create(self):
		unverified = make_user('popup_shop', User.ROLE_BUSINESS, verified=False)

		with self.assertRaises(ForbiddenActionError):
			dispatch.create_offer(actor_from_user(unverified), self._fields())

	def test_rider_cannot_create(self):
		with self.assertRaises(ForbiddenActionError):
			dispatch.create_offer(self.rider_actor, self._fields())

	def test_missing_coordinates_are_geocoded(self):
		geocoder = Mock()
		geocoder.geocode.return_value = [-73.98, 40.75]

		offer = dispatch.create_offer(
			self.business_actor,
			self._fields(delivery_coordinates=None),
			geocoder=geocoder,
		)

		geocoder.geocode.assert_called_once_with('9 Dropoff Ave')
		self.assertEqual(offer.delivery_coordinates, [-73.98, 40.75])

	def test_geocoding_failure_surfaces(self):
		with self.assertRaises(GeocodingFailedError):
			dispatch.create_offer(self.business_actor, self._fields(pickup_coordinates=None))
		self.assertEqual(Offer.objects.count(), 0)

	def test_unverified_rider_cannot_accept(self):
		offer = make_offer(self.business)
		unverified = make_user('new_rider', User.ROLE_RIDER, verified=False)

		with self.assertRaises(ForbiddenActionError):
			dispatch.accept_offer(actor_from_user(unverified), offer.pk)

	def test_only_one_rider_wins_accept_from_stale_reads(self):
		offer = make_offer(self.business)
		riders = [self.rider, self.stranger] + [
			make_user(f'rider_{i}', User.ROLE_RIDER) for i in range(4)
		]
		# Each rider's accept_offer reads the row as it was before anyone claimed it
		snapshots = [Offer.objects.get(pk=offer.pk) for _ in riders]
		read_offer = store.get_offer

		winners, losers = [], []
		for rider, snapshot in zip(riders, snapshots):
			pending = [snapshot]

			def stale_then_fresh(offer_id):
				return pending.pop() if pending else read_offer(offer_id)

			with patch('offers.store.get_offer', side_effect=stale_then_fresh):
				try:
					dispatch.accept_offer(actor_from_user(rider), offer.pk)
					winners.append(rider.id)
				except OfferAlreadyClaimedError:
					losers.append(rider.id)

		self.assertEqual(len(winners), 1)
		self.assertEqual(len(losers), len(riders) - 1)
		offer.refresh_from_db()
		self.assertEqual(offer.accepted_by_id, winners[0])
		self.assertEqual(offer.version, 1)
		self.assertEqual(len(offer.status_history), 1)

	def test_accepting_a_finished_offer_is_an_invalid_transition(self):
		offer = make_offer(self.business)
		dispatch.accept_offer(self.rider_actor, offer.pk)
		for target in ('picked_up', 'in_transit', 'delivered'):
			dispatch.advance_status(self.rider_actor, offer.pk, target)
		dispatch.advance_status(self.business_actor, offer.pk, 'completed')

		with self.assertRaises(InvalidTransitionError):
			dispatch.accept_offer(actor_from_user(self.stranger), offer.pk)
		with self.assertRaises(InvalidTransitionError):
			dispatch.advance_status(actor_from_user(self.stranger), offer.pk, 'accepted')

	def test_history_is_for_parties_only(self):
		offer = make_offer(self.business)
		dispatch.accept_offer(self.rider_actor, offer.pk)

		self.assertEqual(len(dispatch.get_status_history(self.business_actor, offer.pk)), 1)
		self.assertEqual(len(dispatch.get_status_history(self.rider_actor, offer.pk)), 1)
		with self.assertRaises(ForbiddenActionError):
			dispatch.get_status_history(actor_from_user(self.stranger), offer.pk)

	def test_stranger_cannot_advance(self):
		offer = make_offer(self.business)
		dispatch.accept_offer(self.rider_actor, offer.pk)

		with self.assertRaises(ForbiddenActionError):
			dispatch.advance_status(actor_from_user(self.stranger), offer.pk, 'picked_up')

	def test_business_list_reflects_transition(self):
		offer = make_offer(self.business)
		before = dispatch.list_business_offers(self.business_actor)
		self.assertEqual([o['status'] for o in before], ['open'])

		dispatch.accept_offer(self.rider_actor, offer.pk)

		after = dispatch.list_business_offers(self.business_actor)
		self.assertEqual([o['status'] for o in after], ['accepted'])
		self.assertEqual(dispatch.list_business_offers(self.business_actor, 'open'), [])
		deliveries = dispatch.list_rider_deliveries(self.rider_actor)
		self.assertEqual([o['id'] for o in deliveries], [offer.pk])

	def test_dashboards_count_by_status(self):
		first = make_offer(self.business)
		make_offer(self.business)
		dispatch.accept_offer(self.rider_actor, first.pk)
		for target in ('picked_up', 'in_transit', 'delivered', 'completed'):
			dispatch.advance_status(self.rider_actor, first.pk, target)

		business = dispatch.business_dashboard(self.business_actor)
		self.assertEqual(business['totalOffers'], 2)
		self.assertEqual(business['openOffers'], 1)
		self.assertEqual(business['byStatus']['completed'], 1)
		self.assertEqual(business['totalSpent'], '25.00')

		rider = dispatch.rider_dashboard(self.rider_actor)
		self.assertEqual(rider['completedDeliveries'], 1)
		self.assertEqual(rider['totalEarnings'], '25.00')


class OfferApiTests(TestCase):
	def setUp(self):
		fresh_cache()
		self.factory = APIRequestFactory()
		self.business = make_user('bakery', User.ROLE_BUSINESS)
		self.rider = make_user('rider_a', User.ROLE_RIDER)
		self.other_rider = make_user('rider_b', User.ROLE_RIDER)

	def _post(self, view, user, path, data=None, **kwargs):
		request = self.factory.post(path, data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def _get(self, view, user, path, params=None, **kwargs):
		request = self.factory.get(path, params or {})
		if user is not None:
			force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_business_creates_offer(self):
		payload = {
			'title': 'Cake delivery',
			'pickup': {'address': '1 Pickup St', 'coordinates': [-74.006, 40.7128]},
			'delivery': {'address': '9 Dropoff Ave', 'coordinates': [-73.99, 40.73]},
			'package': {'weight': 2.5, 'dimensions': {'length': 30, 'width': 30, 'height': 20}, 'fragile': True},
			'payment': {'amount': '25.00', 'method': 'cash'},
		}

		response = self._post(views.offer_collection, self.business, '/api/offers/', payload)

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		data = response.data['data']
		self.assertEqual(data['status'], 'open')
		self.assertEqual(data['pickup']['coordinates'], [-74.006, 40.7128])
		self.assertEqual(data['package']['volume'], 18000)
		self.assertTrue(data['package']['fragile'])

	def test_invalid_create_payload_gets_validation_envelope(self):
		response = self._post(views.offer_collection, self.business, '/api/offers/', {'title': 'No addresses'})

		self.assertEqual(response.status_code, 400)
		self.assertFalse(response.data['success'])
		self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')
		self.assertIn('pickup', response.data['error']['fields'])

	def test_nearby_without_matches_is_empty_not_error(self):
		response = self._get(
			views.nearby_offers, self.rider, '/api/offers/nearby/',
			{'lng': -74.006, 'lat': 40.7128, 'maxDistance': 5000},
		)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['offers'], [])
		self.assertEqual(response.data['data']['totalOffers'], 0)

	def test_nearby_without_location_is_invalid_location(self):
		response = self._get(views.nearby_offers, self.rider, '/api/offers/nearby/', {'maxDistance': 5000})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error']['code'], 'INVALID_LOCATION')

	def test_nearby_lists_open_offers_with_distance(self):
		offer = make_offer(self.business)

		response = self._get(
			views.nearby_offers, self.rider, '/api/offers/nearby/',
			{'lng': -74.006, 'lat': 40.7128, 'vehicleType': 'bike'},
		)

		offers = response.data['data']['offers']
		self.assertEqual([o['id'] for o in offers], [offer.pk])
		self.assertAlmostEqual(offers[0]['distanceFromRider'], 1112, delta=5)

	def test_second_accept_gets_already_claimed(self):
		offer = make_offer(self.business)
		path = f'/api/offers/{offer.pk}/accept/'

		first = self._post(views.accept_offer, self.rider, path, offer_id=offer.pk)
		second = self._post(views.accept_offer, self.other_rider, path, offer_id=offer.pk)

		self.assertEqual(first.status_code, 200)
		self.assertEqual(first.data['data']['acceptedBy'], self.rider.id)
		self.assertEqual(second.status_code, 409)
		self.assertEqual(second.data['error']['code'], 'OFFER_ALREADY_CLAIMED')

	def test_invalid_transition_envelope_lists_next_states(self):
		offer = make_offer(self.business)
		self._post(views.accept_offer, self.rider, '/accept/', offer_id=offer.pk)
		self._post(views.mark_picked_up, self.rider, '/pickup/', offer_id=offer.pk)
		self._post(views.mark_in_transit, self.rider, '/in-transit/', offer_id=offer.pk)

		response = self._post(views.mark_completed, self.business, '/complete/', offer_id=offer.pk)

		self.assertEqual(response.status_code, 409)
		error = response.data['error']
		self.assertEqual(error['code'], 'INVALID_TRANSITION')
		self.assertEqual(error['currentStatus'], 'in_transit')
		self.assertEqual(error['validNextStates'], ['delivered', 'cancelled'])

	def test_generic_status_endpoint_and_cancel(self):
		offer = make_offer(self.business)
		self._post(views.accept_offer, self.rider, '/accept/', offer_id=offer.pk)

		moved = self._post(
			views.update_offer_status, self.rider, '/status/',
			{'status': 'picked_up', 'notes': 'Got it', 'location': [-74.0, 40.72]}, offer_id=offer.pk,
		)
		self.assertEqual(moved.status_code, 200)
		self.assertEqual(moved.data['data']['status'], 'picked_up')

		cancelled = self._post(views.cancel_offer, self.business, '/cancel/', {'reason': 'Customer left'}, offer_id=offer.pk)
		self.assertEqual(cancelled.status_code, 200)
		self.assertEqual(cancelled.data['data']['cancellationReason'], 'Customer left')

		history = self._get(views.offer_history, self.business, '/history/', offer_id=offer.pk)
		self.assertEqual([e['status'] for e in history.data['data']], ['accepted', 'picked_up', 'cancelled'])

	def test_unknown_offer_is_not_found(self):
		response = self._get(views.offer_detail, self.rider, '/api/offers/999/', offer_id=999)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error']['code'], 'NOT_FOUND')

	def test_other_rider_cannot_view_accepted_offer(self):
		offer = make_offer(self.business)
		self._post(views.accept_offer, self.rider, '/accept/', offer_id=offer.pk)

		response = self._get(views.offer_detail, self.other_rider, '/', offer_id=offer.pk)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error']['code'], 'FORBIDDEN')

	def test_anonymous_request_is_unauthorized(self):
		response = self._get(views.nearby_offers, None, '/api/offers/nearby/', {'lng': 0, 'lat': 0})

		self.assertEqual(response.status_code, 401)

	def test_dashboard_endpoints_check_role(self):
		ok = self._get(views.business_dashboard, self.business, '/api/dashboard/business/')
		denied = self._get(views.business_dashboard, self.rider, '/api/dashboard/business/')

		self.assertEqual(ok.status_code, 200)
		self.assertEqual(ok.data['data']['totalOffers'], 0)
		self.assertEqual(denied.status_code, 403)


class CacheMaintenanceTests(TestCase):
	def setUp(self):
		self.cache = fresh_cache()

	def test_sweep_command_reports_backend(self):
		from io import StringIO
		from django.core.management import call_command

		out = StringIO()
		call_command('sweep_offer_cache', '--time-budget', '1', stdout=out)

		self.assertIn('locmem backend', out.getvalue())

	def test_sweep_task_returns_report(self):
		from .tasks import sweep_offer_cache_task

		result = sweep_offer_cache_task.delay(time_budget=1).get()

		self.assertEqual(result['removed'], 0)
		self.assertEqual(result['backend'], 'locmem')

	def test_health_check_reports_cache(self):
		from app_backend.views import health_check

		response = health_check(APIRequestFactory().get('/health/'))

		self.assertEqual(response.data['services']['cache'], 'healthy')
		self.assertEqual(response.data['cache_stats']['backend'], 'locmem')

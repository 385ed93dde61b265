from types import SimpleNamespace
from unittest.mock import patch

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase

from .consumers import OfferEventConsumer
from .notifications import notify


def with_user(app, user):
	async def inner(scope, receive, send):
		return await app({**scope, 'user': user}, receive, send)
	return inner


def ws_user(user_id, role):
	return SimpleNamespace(id=user_id, role=role, is_anonymous=False)


class OfferEventConsumerTests(SimpleTestCase):
	async def _connect(self, user):
		communicator = WebsocketCommunicator(with_user(OfferEventConsumer.as_asgi(), user), '/ws/events/')
		connected, _ = await communicator.connect()
		return communicator, connected

	async def test_rider_receives_offer_events(self):
		communicator, connected = await self._connect(ws_user(7, 'rider'))
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')

		await get_channel_layer().group_send('user_7', {
			'type': 'offer_event',
			'event': 'offer_cancelled',
			'payload': {'offerId': 12, 'status': 'cancelled'},
		})
		event = await communicator.receive_json_from()

		self.assertEqual(event, {'type': 'offer_cancelled', 'offerId': 12, 'status': 'cancelled'})
		await communicator.disconnect()

	async def test_ping_pong(self):
		communicator, _ = await self._connect(ws_user(8, 'business'))
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'ping'})

		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})
		await communicator.disconnect()

	async def test_anonymous_is_rejected(self):
		anonymous = SimpleNamespace(id=None, role=None, is_anonymous=True)

		_, connected = await self._connect(anonymous)

		self.assertFalse(connected)


class NotifyTests(SimpleTestCase):
	def test_no_recipient_is_a_noop(self):
		self.assertFalse(notify(None, 'offer_accepted', {}))

	@patch('realtime.notifications.async_to_sync', side_effect=RuntimeError('layer down'))
	def test_delivery_failure_is_swallowed(self, _mock):
		self.assertFalse(notify(3, 'offer_accepted', {'offerId': 1}))

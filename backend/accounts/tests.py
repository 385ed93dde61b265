from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate
from rest_framework_simplejwt.tokens import AccessToken

from offers.tests import fresh_cache, make_user
from services.caching import MISSING
from services.caching.keys import auth_email_key
from .identity import actor_from_user, issue_tokens, lookup_identity_by_email
from .models import User
from . import views


class RegisterTests(TestCase):
	def setUp(self):
		fresh_cache()
		self.factory = APIRequestFactory()

	def _register(self, **data):
		payload = {'username': 'corner_bakery', 'email': 'Orders@Bakery.example', 'password': 'password123'}
		payload.update(data)
		request = self.factory.post('/api/auth/register/', payload, format='json')
		return views.RegisterView.as_view()(request)

	def test_business_registers(self):
		response = self._register(role='business', business_name='Corner Bakery')

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['user']['email'], 'orders@bakery.example')
		self.assertFalse(response.data['user']['is_verified'])
		self.assertIn('access', response.data['tokens'])

	def test_rider_needs_vehicle(self):
		response = self._register(role='rider')

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_type', response.data['error']['fields'])

	def test_duplicate_email(self):
		self._register(role='business', business_name='Corner Bakery')
		response = self._register(username='other', role='business', business_name='Other')

		self.assertEqual(response.status_code, 400)
		self.assertIn('email', response.data['error']['fields'])


class LoginTests(TestCase):
	def setUp(self):
		self.cache = fresh_cache()
		self.factory = APIRequestFactory()
		self.rider = make_user('rider_a', User.ROLE_RIDER)

	def _login(self, email, password):
		request = self.factory.post('/api/auth/login/', {'email': email, 'password': password}, format='json')
		return views.LoginView.as_view()(request)

	def test_login_by_email(self):
		response = self._login('RIDER_A@example.com', 'pass1234')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['user']['id'], self.rider.id)
		self.assertNotIn('password', response.data['user'])
		self.assertEqual(AccessToken(response.data['tokens']['access'])['user_id'], self.rider.id)

	def test_wrong_password(self):
		response = self._login('rider_a@example.com', 'nope')

		self.assertEqual(response.status_code, 401)
		self.assertEqual(response.data['error']['code'], 'INVALID_CREDENTIALS')

	def test_unknown_email(self):
		self.assertEqual(self._login('ghost@example.com', 'pass1234').status_code, 401)

	def test_repeat_lookup_is_served_from_cache(self):
		lookup_identity_by_email('rider_a@example.com')

		with self.assertNumQueries(0):
			identity = lookup_identity_by_email(' Rider_A@Example.com')
		self.assertEqual(identity['id'], self.rider.id)

	def test_unknown_email_is_not_remembered(self):
		self.assertIsNone(lookup_identity_by_email('late@example.com'))
		make_user('late', User.ROLE_RIDER)

		self.assertIsNotNone(lookup_identity_by_email('late@example.com'))

	def test_last_login_update_keeps_cached_identity(self):
		lookup_identity_by_email('rider_a@example.com')

		self.rider.save(update_fields=['last_login'])

		self.assertIsNot(self.cache.get(auth_email_key('rider_a@example.com')), MISSING)

	def test_issue_tokens_carries_user_id(self):
		tokens = issue_tokens(self.rider.id)

		self.assertEqual(AccessToken(tokens['access'])['user_id'], self.rider.id)


class ProfileTests(TestCase):
	def setUp(self):
		self.cache = fresh_cache()
		self.factory = APIRequestFactory()
		self.business = make_user('bakery', User.ROLE_BUSINESS)

	def test_actor_from_user(self):
		actor = actor_from_user(self.business)

		self.assertEqual((actor.id, actor.role, actor.verified), (self.business.id, 'business', True))
		self.assertTrue(actor.is_business)
		self.assertFalse(actor.is_rider)

	def test_email_change_drops_old_and_new_entries(self):
		lookup_identity_by_email('bakery@example.com')

		request = self.factory.patch('/api/auth/profile/', {'email': 'Shop@Example.com'}, format='json')
		force_authenticate(request, user=self.business)
		response = views.ProfileView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['user']['email'], 'shop@example.com')
		self.assertIs(self.cache.get(auth_email_key('bakery@example.com')), MISSING)
		self.assertIsNone(lookup_identity_by_email('bakery@example.com'))
		self.assertEqual(lookup_identity_by_email('shop@example.com')['id'], self.business.id)

	def test_role_is_not_editable(self):
		request = self.factory.patch('/api/auth/profile/', {'role': 'rider'}, format='json')
		force_authenticate(request, user=self.business)
		views.ProfileView.as_view()(request)

		self.business.refresh_from_db()
		self.assertEqual(self.business.role, User.ROLE_BUSINESS)

	def test_password_change_refreshes_cached_credentials(self):
		lookup_identity_by_email('bakery@example.com')

		request = self.factory.post(
			'/api/auth/password/',
			{'old_password': 'pass1234', 'new_password': 'n3w-passw0rd!'},
			format='json',
		)
		force_authenticate(request, user=self.business)
		response = views.PasswordChangeView.as_view()(request)
		self.assertEqual(response.status_code, 200)

		login = self.factory.post(
			'/api/auth/login/', {'email': 'bakery@example.com', 'password': 'n3w-passw0rd!'}, format='json',
		)
		self.assertEqual(views.LoginView.as_view()(login).status_code, 200)

	def test_wrong_old_password(self):
		request = self.factory.post(
			'/api/auth/password/', {'old_password': 'bad', 'new_password': 'n3w-passw0rd!'}, format='json',
		)
		force_authenticate(request, user=self.business)

		self.assertEqual(views.PasswordChangeView.as_view()(request).status_code, 400)

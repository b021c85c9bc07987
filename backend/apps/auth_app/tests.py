"""
Tests for registration, login and the current user endpoint
"""
from django.contrib.auth.models import User
from rest_framework import status
from rest_framework.test import APITestCase

from apps.auth_app.models import UserProfile

PASSWORD = 'Corr3ct-Horse-Battery'


class AuthTestMixin:

    def _register(self, **overrides):
        payload = {
            'username': 'alice',
            'password': PASSWORD,
            'phone': '13800000000',
            'email': 'alice@example.com',
        }
        payload.update(overrides)
        return self.client.post('/api/auth/register/', payload, format='json')


class RegisterTest(AuthTestMixin, APITestCase):

    def test_register_returns_tokens_and_user(self):
        response = self._register()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'alice')
        self.assertEqual(response.data['user']['phone'], '13800000000')
        self.assertNotIn('password', response.data['user'])

        user = User.objects.get(username='alice')
        self.assertTrue(user.check_password(PASSWORD))
        self.assertNotEqual(user.password, PASSWORD)
        self.assertEqual(user.profile.phone, '13800000000')

    def test_duplicate_phone_is_rejected(self):
        self._register()

        response = self._register(username='bob', email='bob@example.com')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)
        self.assertEqual(User.objects.count(), 1)

    def test_duplicate_email_is_rejected(self):
        self._register()

        response = self._register(username='bob', phone='13900000000', email='ALICE@example.com')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_weak_password_is_rejected(self):
        response = self._register(password='123')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)
        self.assertFalse(User.objects.exists())

    def test_profile_created_for_every_user(self):
        user = User.objects.create_user(username='admin-made', password=PASSWORD)

        self.assertTrue(UserProfile.objects.filter(user=user).exists())
        self.assertIsNone(user.profile.phone)


class LoginTest(AuthTestMixin, APITestCase):

    def setUp(self):
        self._register()

    def test_login_with_phone(self):
        response = self.client.post(
            '/api/auth/login/',
            {'phone': '13800000000', 'password': PASSWORD},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['email'], 'alice@example.com')

    def test_login_with_email(self):
        response = self.client.post(
            '/api/auth/login/',
            {'email': 'alice@example.com', 'password': PASSWORD},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password(self):
        response = self.client.post(
            '/api/auth/login/',
            {'phone': '13800000000', 'password': 'wrong-password'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_unknown_phone(self):
        response = self.client.post(
            '/api/auth/login/',
            {'phone': '10000000000', 'password': PASSWORD},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_identifier_required(self):
        response = self.client.post('/api/auth/login/', {'password': PASSWORD}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_refresh_token(self):
        login = self.client.post(
            '/api/auth/login/',
            {'phone': '13800000000', 'password': PASSWORD},
            format='json',
        )

        response = self.client.post(
            '/api/auth/token/refresh/',
            {'refresh': login.data['refresh']},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)


class CurrentUserTest(AuthTestMixin, APITestCase):

    def test_me_with_bearer_token(self):
        tokens = self._register().data

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'alice')
        self.assertEqual(response.data['phone'], '13800000000')

    def test_me_requires_authentication(self):
        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

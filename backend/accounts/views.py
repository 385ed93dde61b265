from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from .identity import issue_tokens
from .serializers import (
    LoginSerializer,
    PasswordChangeSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserSerializer,
)


class RegisterView(APIView):
    """
    Register a new user (business or rider)

    POST Body:
    {
        "username": "corner_bakery",
        "email": "orders@bakery.example",
        "password": "password123",
        "role": "business",  // or "rider"
        "phone_number": "+1234567890",
        "business_name": "Corner Bakery",  // required for businesses
        "vehicle_type": "bike"  // required for riders
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        return Response({
            'message': 'User registered successfully',
            'user': UserSerializer(user).data,
            'tokens': issue_tokens(user.id),
        }, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    Login with email and password to get JWT tokens

    POST Body:
    {
        "email": "orders@bakery.example",
        "password": "password123"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identity = serializer.validated_data['identity']
        if identity is None:
            return Response(
                {'success': False, 'error': {'code': 'INVALID_CREDENTIALS', 'message': 'Invalid email or password'}},
                status=status.HTTP_401_UNAUTHORIZED
            )

        return Response({
            "message": "Login successful",
            "user": identity,
            "tokens": issue_tokens(identity["id"]),
        }, status=status.HTTP_200_OK)


class RefreshTokenView(APIView):
    """
    Refresh JWT access token

    POST Body:
    {
        "refresh": "your_refresh_token"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        refresh_token = request.data.get('refresh')

        if not refresh_token:
            return Response(
                {'success': False, 'error': {'code': 'VALIDATION_ERROR', 'message': 'Refresh token is required'}},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            refresh = RefreshToken(refresh_token)
        except TokenError:
            return Response(
                {'success': False, 'error': {'code': 'INVALID_TOKEN', 'message': 'Invalid refresh token'}},
                status=status.HTTP_401_UNAUTHORIZED
            )
        return Response({'access': str(refresh.access_token)})


class ProfileView(APIView):
    """Read or partially update the caller's profile"""
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        return Response({'user': UserSerializer(request.user).data})

    def patch(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response({
            'message': 'Profile updated',
            'user': UserSerializer(user).data,
        })


class PasswordChangeView(APIView):
    """
    Change the caller's password

    POST Body:
    {
        "old_password": "password123",
        "new_password": "n3w-passw0rd!"
    }
    """
    permission_classes = (IsAuthenticated,)

    def post(self, request):
        serializer = PasswordChangeSerializer(data=request.data, context={'user': request.user})
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response({'message': 'Password changed successfully'})

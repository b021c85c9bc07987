"""
Authentication views
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import LoginSerializer, RegisterSerializer, UserSerializer, issue_tokens

logger = logging.getLogger(__name__)


class RegisterView(generics.GenericAPIView):
    """
    Create an account and log it in

    POST /api/auth/register/
    Body: {"username", "password", "phone", "email"}
    """
    serializer_class = RegisterSerializer
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        logger.info("user_registered", extra={"user_id": user.id})
        return Response(
            {**issue_tokens(user), 'user': UserSerializer(user).data},
            status=status.HTTP_201_CREATED,
        )


class LoginView(TokenObtainPairView):
    """Token view that accepts a phone number (or email) instead of username"""
    serializer_class = LoginSerializer


class CurrentUserView(generics.RetrieveAPIView):
    """Get current user profile"""
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user

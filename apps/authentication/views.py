import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import authenticate

from apps.permissions.gate import role_for_user

logger = logging.getLogger(__name__)


def serialize_user(user) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": role_for_user(user).value,
        "is_developer": user.is_developer,
        "company": user.company,
    }


@api_view(["POST"])
@permission_classes([AllowAny])
def login_view(request):
    """
    Login endpoint for JWT authentication
    returns: JWT refresh and access tokens
    """
    email = (request.data.get("email") or "").strip()
    password = request.data.get("password")

    if not email or not password:
        return Response({"error": "Email and password are required"}, status=status.HTTP_400_BAD_REQUEST)

    user = authenticate(request, email=email, password=password)

    if not user:
        logger.info(f"Failed login for {email}")
        return Response({"error": "Invalid email or password"}, status=status.HTTP_401_UNAUTHORIZED)

    refresh = RefreshToken.for_user(user)
    return Response(
        {
            "access": str(refresh.access_token),
            "refresh": str(refresh),
            "user": serialize_user(user),
        }
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def logout_view(request):
    refresh_token = request.data.get("refresh") or request.COOKIES.get("refresh_token")

    if refresh_token is None:
        return Response({"error": "No refresh token provided."}, status=status.HTTP_400_BAD_REQUEST)

    try:
        token = RefreshToken(refresh_token)
        token.blacklist()

    except TokenError as e:
        return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

    response = Response(status=status.HTTP_204_NO_CONTENT)
    response.delete_cookie("refresh_token")

    return response


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def me_view(request):
    """Current user profile with effective role"""
    return Response(serialize_user(request.user))

from ninja.errors import HttpError
from ninja.security import HttpBearer
from ninja_jwt.authentication import JWTAuth

from api.models import ServiceToken


class ServiceTokenAuth(HttpBearer):
    def authenticate(self, request, token):
        try:
            return ServiceToken.objects.get(token=token)
        except ServiceToken.DoesNotExist:
            return None


class StaffJWTAuth(JWTAuth):
    """JWT auth restricted to staff users (review queue operators)."""

    def authenticate(self, request, token):
        user = super().authenticate(request, token)
        if user is not None and not user.is_staff:
            raise HttpError(403, "Staff access required")
        return user

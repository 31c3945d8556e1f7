import secrets

from django.db import models


def generate_token():
    return secrets.token_hex(20)


class ServiceToken(models.Model):
    """Bearer token for internal callers (scraper, chat service)."""
    name = models.CharField(max_length=100, unique=True)
    token = models.CharField(max_length=40, unique=True, default=generate_token)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

"""Credential resolution with fallback to process-wide defaults."""

from __future__ import annotations

from typing import Optional

from graft_hook.core.config import DEFAULT_REGISTRY
from graft_hook.core.exceptions import MissingCredentialsError
from graft_hook.core.models import Credentials, WebhookPayload


class CredentialResolver:
    """Resolves (user, token, registry) per field: request first, then defaults."""

    def __init__(
        self,
        default_user: Optional[str] = None,
        default_token: Optional[str] = None,
        default_registry: str = DEFAULT_REGISTRY,
    ):
        self.default_user = default_user or None
        self.default_token = default_token or None
        self.default_registry = default_registry

    @classmethod
    def from_settings(cls, settings) -> "CredentialResolver":
        return cls(
            default_user=settings.default_user,
            default_token=settings.default_token,
            default_registry=settings.default_registry,
        )

    def resolve(self, request: WebhookPayload) -> Credentials:
        user = request.user or self.default_user
        token = request.token or self.default_token

        missing = []
        if not user:
            missing.append("user")
        if not token:
            missing.append("token")
        if missing:
            raise MissingCredentialsError(missing)

        return Credentials(
            user=user,
            token=token,
            registry=request.registry or self.default_registry,
        )

    def __repr__(self) -> str:
        return (
            f"CredentialResolver(default_user={self.default_user!r}, "
            f"default_token={'set' if self.default_token else None}, "
            f"default_registry={self.default_registry!r})"
        )

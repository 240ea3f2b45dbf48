"""Service principal credential resolution for a cluster scope.

The client id, tenant id and subscription id are known up front from the
cluster identity and control plane. The client secret is resolved lazily from
an ordered chain of secret sources (Kubernetes Secret references first, then
an environment variable fallback) and cached for the provider's lifetime.

SECURITY: The resolved secret is never logged, never included in an
exception message and never shown in ``repr()``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from azure.identity import ClientSecretCredential
from kubernetes import client
from kubernetes import config as kube_config

from .config import DEFAULT_CLIENT_SECRET_ENV_VAR
from .errors import ConfigurationError, SecretResolutionError
from .models import AzureClusterIdentity, SecretReference
from .security import mask_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Resolved service principal credentials."""

    client_id: str
    tenant_id: str
    subscription_id: str
    client_secret: str = field(repr=False)


class SecretSource(Protocol):
    """One link in the secret resolution chain."""

    @property
    def description(self) -> str: ...

    def read(self) -> str | None:
        """Return the secret, None if this reference is absent.

        Raises:
            SecretResolutionError: If the reference exists but is unusable.
        """
        ...


def _load_core_api() -> client.CoreV1Api:
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        kube_config.load_kube_config()
    return client.CoreV1Api()


def decode_secret_value(value: str | bytes, reference: str) -> str:
    """Decode a Secret data value (base64 string or raw bytes) to text.

    Raises:
        SecretResolutionError: If the value is not valid base64 / UTF-8.
    """
    try:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise SecretResolutionError(f"Secret {reference} could not be decoded") from e


class KubernetesSecretSource:
    """Reads one key of a namespaced Kubernetes Secret."""

    def __init__(
        self,
        reference: SecretReference,
        api: client.CoreV1Api | None = None,
    ) -> None:
        self._reference = reference
        self._api = api

    @property
    def description(self) -> str:
        return f"secret {self._reference}"

    def read(self) -> str | None:
        if self._api is None:
            try:
                self._api = _load_core_api()
            except kube_config.ConfigException as e:
                raise SecretResolutionError(
                    f"Cannot reach Kubernetes API to read secret {self._reference}: {e}"
                ) from e

        try:
            secret = self._api.read_namespaced_secret(
                name=self._reference.name,
                namespace=self._reference.namespace,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                logger.debug(f"Secret {self._reference} not found")
                return None
            raise SecretResolutionError(
                f"Failed to read secret {self._reference} (status {e.status})"
            ) from e

        data = secret.data or {}
        if self._reference.key not in data:
            logger.debug(f"Key missing from secret {self._reference}")
            return None
        return decode_secret_value(data[self._reference.key], str(self._reference))


class EnvironmentSecretSource:
    """Reads the secret from an environment variable."""

    def __init__(self, variable: str = DEFAULT_CLIENT_SECRET_ENV_VAR) -> None:
        self._variable = variable

    @property
    def description(self) -> str:
        return f"environment variable {self._variable}"

    def read(self) -> str | None:
        return os.environ.get(self._variable) or None


class CredentialsProvider:
    """Resolves and caches service principal credentials for one cluster scope."""

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        subscription_id: str,
        sources: Sequence[SecretSource],
    ) -> None:
        if not client_id or not tenant_id:
            raise ConfigurationError("client id and tenant id are required")
        if not sources:
            raise ConfigurationError("at least one client secret source is required")

        self._client_id = client_id
        self._tenant_id = tenant_id
        self._subscription_id = subscription_id
        self._sources = list(sources)
        self._secret: str | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_identity(
        cls,
        identity: AzureClusterIdentity,
        subscription_id: str,
        *,
        core_api: client.CoreV1Api | None = None,
        fallback_env_var: str | None = DEFAULT_CLIENT_SECRET_ENV_VAR,
    ) -> CredentialsProvider:
        """Build a provider from a cluster identity object.

        The identity's secret reference (if any) is tried first, then the
        fallback environment variable (if any).
        """
        sources: list[SecretSource] = []
        if identity.spec.client_secret is not None:
            sources.append(KubernetesSecretSource(identity.spec.client_secret, core_api))
        if fallback_env_var:
            sources.append(EnvironmentSecretSource(fallback_env_var))

        return cls(
            client_id=identity.spec.client_id,
            tenant_id=identity.spec.tenant_id,
            subscription_id=subscription_id,
            sources=sources,
        )

    def get_client_id(self) -> str:
        return self._client_id

    def get_tenant_id(self) -> str:
        return self._tenant_id

    def get_subscription_id(self) -> str:
        return self._subscription_id

    async def get_client_secret(self) -> str:
        """Resolve the client secret, walking the source chain once.

        Raises:
            SecretResolutionError: If no source yields a secret or a source
                holds an undecodable value.
        """
        async with self._lock:
            if self._secret is not None:
                return self._secret

            loop = asyncio.get_running_loop()
            for source in self._sources:
                value = await loop.run_in_executor(None, source.read)
                if value is not None:
                    logger.info(
                        "Resolved client secret",
                        extra={
                            "client_id": mask_identifier(self._client_id),
                            "source": source.description,
                        },
                    )
                    self._secret = value
                    return value

            tried = ", ".join(s.description for s in self._sources)
            raise SecretResolutionError(
                f"No client secret found for client {mask_identifier(self._client_id)} "
                f"(tried: {tried})"
            )

    async def get_credentials(self) -> Credentials:
        return Credentials(
            client_id=self._client_id,
            tenant_id=self._tenant_id,
            subscription_id=self._subscription_id,
            client_secret=await self.get_client_secret(),
        )

    async def get_token_credential(self) -> ClientSecretCredential:
        """Azure SDK credential for the service principal."""
        return ClientSecretCredential(
            tenant_id=self._tenant_id,
            client_id=self._client_id,
            client_secret=await self.get_client_secret(),
        )

"""Azure API Mock for Integration Testing.

In-memory fakes of the Azure Authorization and Compute clients plus mock
secret sources, so reconciler services and the credential provider can be
tested without Azure, Azure AD or a Kubernetes API server.

Key Features:
- In-memory state for role assignments, scale sets and scale set extensions
- Error injection per operation and resource key
- Secret sources that count reads and simulate missing/corrupt secrets

Usage:
    from azure_mock import MockAzureContext, create_credentials_provider

    with MockAzureContext() as ctx:
        summary = await VMSSExtensionService(scope).reconcile()
        assert len(ctx.state.extensions) == 1
"""

from .context import MockAzureContext, mock_azure_context
from .credential import (
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_SUBSCRIPTION_ID,
    TEST_TENANT_ID,
    MockSecretSource,
    MockTokenCredential,
    create_credentials_provider,
)
from .resources import (
    MockAuthorizationClient,
    MockComputeClient,
    MockResourceState,
    http_error,
)

__all__ = [
    "MockAuthorizationClient",
    "MockAzureContext",
    "MockComputeClient",
    "MockResourceState",
    "MockSecretSource",
    "MockTokenCredential",
    "TEST_CLIENT_ID",
    "TEST_CLIENT_SECRET",
    "TEST_SUBSCRIPTION_ID",
    "TEST_TENANT_ID",
    "create_credentials_provider",
    "http_error",
    "mock_azure_context",
]

"""
Credential Provider Module

Builds the AzureContext that every CloudResourceClient is constructed from.
The context is an explicit value passed through the call chain, so several
subscriptions or tenants can be driven from one process without any global
"current subscription" state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from .config_manager import AzureConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AzureContext:
    """Credential and subscription an operation runs against."""

    credential: TokenCredential
    subscription_id: str
    tenant_id: Optional[str] = None

    def for_subscription(self, subscription_id: str) -> "AzureContext":
        """Same identity, different subscription."""
        return AzureContext(self.credential, subscription_id, self.tenant_id)


def build_credential(config: AzureConfig) -> TokenCredential:
    """
    Select a credential for the configured identity.

    A fully specified service principal wins; otherwise the default chain
    (environment, managed identity, Azure CLI login, ...) is used.
    """
    if config.has_service_principal():
        logger.debug(f"Using service principal credential for tenant {config.tenant_id}")
        return ClientSecretCredential(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=config.client_secret,
        )
    logger.debug("Using DefaultAzureCredential")
    return DefaultAzureCredential()


def create_azure_context(config: AzureConfig) -> AzureContext:
    """Create the AzureContext for a validated AzureConfig."""
    config.validate()
    return AzureContext(
        credential=build_credential(config),
        subscription_id=config.subscription_id,
        tenant_id=config.tenant_id,
    )

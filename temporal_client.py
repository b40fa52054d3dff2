"""Temporal client factory.

Creates connections to Temporal using the service settings (environment
variables, optionally from .env via core.config).
"""

from typing import Optional

from temporalio.client import Client

from core.config import Settings, get_settings
from core.errors import ConfigurationError


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from settings:
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "temporal.example.com:7233")
    - TEMPORAL_NAMESPACE: Namespace (e.g., "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud. Without it the client
      connects without TLS (local dev server)

    Returns:
        Connected Temporal client

    Raises:
        ConfigurationError: If TEMPORAL_ENDPOINT is missing
    """
    settings = settings or get_settings()

    if not settings.temporal_endpoint:
        raise ConfigurationError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    if not settings.temporal_api_key:
        return await Client.connect(
            settings.temporal_endpoint,
            namespace=settings.temporal_namespace,
        )

    # Temporal Cloud: TLS with system certificates, API key as authorization header
    return await Client.connect(
        target_host=settings.temporal_endpoint,
        namespace=settings.temporal_namespace,
        tls=True,
        api_key=settings.temporal_api_key,
    )

"""
Storage Client Factory

Builds the BlobServiceClient used by the issuer, either from a connection
string (shared key, able to sign SAS tokens) or from an account URL with an
Azure AD credential (able to provision, unable to sign service SAS tokens).
"""

import logging
from typing import Optional

from azure.identity import ChainedTokenCredential, DefaultAzureCredential, ManagedIdentityCredential
from azure.storage.blob import BlobServiceClient

from services.errors import AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)


def create_blob_service_client(connection_string: Optional[str] = None, account_url: Optional[str] = None) -> BlobServiceClient:
    """
    Create a BlobServiceClient.

    Args:
        connection_string: Storage connection string (preferred, carries the account key)
        account_url: Account endpoint used with a token credential when no connection string is set

    Returns:
        A configured BlobServiceClient

    Raises:
        ConfigurationError: If neither setting is usable
    """
    if connection_string:
        try:
            client = BlobServiceClient.from_connection_string(connection_string)
        except ValueError as e:
            raise ConfigurationError(f"Invalid storage connection string: {e}") from e
        logger.info(f"Blob service client created for account {client.account_name}")
        return client

    if account_url:
        # Managed Identity in Azure, DefaultAzureCredential (az login etc.) elsewhere.
        # The chain falls through at token time, when Managed Identity turns out unavailable.
        credential = ChainedTokenCredential(ManagedIdentityCredential(), DefaultAzureCredential())
        client = BlobServiceClient(account_url=account_url, credential=credential)
        logger.info("Blob service client authenticated using Managed Identity with DefaultAzureCredential fallback")
        return client

    raise ConfigurationError("No storage connection string or account URL configured")


def get_account_key(service_client: BlobServiceClient) -> str:
    """
    Return the shared account key held by ``service_client``.

    Raises:
        AuthorizationError: If the client was not authorized with a shared key
    """
    account_key = getattr(service_client.credential, "account_key", None)
    if not isinstance(account_key, str) or not account_key:
        raise AuthorizationError(
            "Blob service client must be authorized with Shared Key credentials to create a SAS"
        )
    return account_key

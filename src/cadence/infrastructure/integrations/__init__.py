"""Media server adapters."""

from cadence.config import ServerSettings
from cadence.domain.exceptions import ConfigurationError
from cadence.domain.ports import ILibraryServerApi
from cadence.infrastructure.integrations.ampache_client import AmpacheClient
from cadence.infrastructure.integrations.subsonic_client import SubsonicClient


def create_server_api(settings: ServerSettings) -> ILibraryServerApi:
    """Build the adapter for the configured dialect.

    Raises:
        ConfigurationError: If the server URL or username is missing
    """
    if not settings.url or not settings.username:
        raise ConfigurationError("SERVER_URL and SERVER_USERNAME must be set")
    if settings.dialect == "ampache":
        return AmpacheClient(settings)
    return SubsonicClient(settings)


__all__ = ["AmpacheClient", "SubsonicClient", "create_server_api"]

import importlib

from aweme_sync.datastore.interface import DatastoreInterface
from aweme_sync.datastore.memory_store import InMemoryDatastore
from aweme_sync.services.exceptions import DatastoreConfigurationError


def load_datastore(backend: str) -> DatastoreInterface:
    """
    Build the destination datastore named by DATASTORE_BACKEND.

    Args:
        backend: "memory", or "package.module:callable" for an adapter factory
            that takes no arguments and returns a DatastoreInterface
    """
    backend = (backend or "memory").strip()
    if backend.lower() == "memory":
        return InMemoryDatastore()

    module_name, sep, attr = backend.partition(":")
    if not sep or not module_name or not attr:
        raise DatastoreConfigurationError(
            f"Unknown datastore backend: {backend}", config_key="DATASTORE_BACKEND"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise DatastoreConfigurationError(
            f"Cannot import datastore module {module_name}: {e}", config_key="DATASTORE_BACKEND"
        ) from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise DatastoreConfigurationError(
            f"{backend} is not a callable datastore factory", config_key="DATASTORE_BACKEND"
        )
    datastore = factory()
    if not isinstance(datastore, DatastoreInterface):
        raise DatastoreConfigurationError(
            f"{backend} returned {type(datastore).__name__}, not a DatastoreInterface",
            config_key="DATASTORE_BACKEND",
        )
    return datastore

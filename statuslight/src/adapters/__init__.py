"""StatusLight - Adapters Package

Adapters for external persistence. Swapping the secret backend only means
changing the factory.

Available adapters:
    - secret_store.get_secret_store: JSON file (optional SOPS) or in-memory
"""

from statuslight.src.adapters.secret_store import (
    InMemorySecretStore,
    JsonFileSecretStore,
    SecretKeys,
    SecretStore,
    get_secret_store,
)

__all__ = [
    "get_secret_store",
    "SecretStore",
    "SecretKeys",
    "JsonFileSecretStore",
    "InMemorySecretStore",
]

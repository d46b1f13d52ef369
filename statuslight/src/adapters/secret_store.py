"""
Secure secret store adapters.

Everything StatusLight persists (OAuth tokens, Govee API key, device
selection, feature configuration) goes through :class:`SecretStore`.
Values are strings; structured values are stored as JSON.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from config.exceptions import SecretStoreError

logger = structlog.get_logger(__name__)


class SecretKeys:
    """Well-known keys inside the StatusLight namespace."""

    MS_TOKENS = "ms_graph_tokens"
    GOVEE_API_KEY = "govee_api_key"
    SELECTED_DEVICES = "selected_devices"
    DEVICE_ACTIVE_STATES = "device_active_states"
    DEVICE_ASSIGNMENTS = "device_assignments"
    MEETING_TRACKER_CONFIG = "meeting_tracker_config"
    COLOR_MAPPING = "color_mapping"
    PRESENCE_POLL_INTERVAL = "presence_poll_interval"


class SecretStore(ABC):
    """Durable key/value store exclusive to this application."""

    @abstractmethod
    async def store(self, value: str, key: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def retrieve(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None if absent."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``; deleting a missing key is not an error."""

    async def store_json(self, value: Any, key: str) -> None:
        await self.store(json.dumps(value), key)

    async def retrieve_json(self, key: str) -> Any:
        raw = await self.retrieve(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SecretStoreError("Corrupted value for key '%s'" % key) from e


class InMemorySecretStore(SecretStore):
    """Process-local store, used by tests and ``--ephemeral`` runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def store(self, value: str, key: str) -> None:
        self._data[key] = value

    async def retrieve(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileSecretStore(SecretStore):
    """JSON file store, one file per application namespace.

    The plaintext file is created with mode 0600. When ``sops_enabled`` is
    set, the file is encrypted with SOPS after every write and only the
    ``.enc`` file is kept on disk.

    Attributes:
        path: Plaintext JSON file
        encrypted_path: SOPS-encrypted file (``<path>.enc``)
        sops_enabled: Encrypt at rest with SOPS
    """

    def __init__(self, path: str, sops_enabled: bool = False):
        self.path = Path(path).expanduser()
        self.encrypted_path = self.path.with_suffix(self.path.suffix + ".enc")
        self.sops_enabled = sops_enabled
        self._lock = asyncio.Lock()

    async def store(self, value: str, key: str) -> None:
        async with self._lock:
            data = await self._load()
            data[key] = value
            await self._save(data)

    async def retrieve(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await self._load()
        return data.get(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if key in data:
                del data[key]
                await self._save(data)

    async def _load(self) -> Dict[str, str]:
        if self.sops_enabled and self.encrypted_path.exists():
            return await self._decrypt_with_sops()

        if not self.path.exists():
            return {}

        try:
            return json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise SecretStoreError("Failed to read %s: %s" % (self.path, e)) from e

    async def _save(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise SecretStoreError("Failed to write %s: %s" % (self.path, e)) from e

        if self.sops_enabled:
            await self._encrypt_with_sops()
            self.path.unlink(missing_ok=True)

    async def _encrypt_with_sops(self) -> None:
        process = await asyncio.create_subprocess_exec(
            "sops",
            "--input-type",
            "json",
            "--output-type",
            "json",
            "-e",
            str(self.path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise SecretStoreError(
                "SOPS encrypt failed: %s" % (stderr.decode() if stderr else "unknown error")
            )

        self.encrypted_path.write_bytes(stdout)
        os.chmod(self.encrypted_path, 0o600)

    async def _decrypt_with_sops(self) -> Dict[str, str]:
        process = await asyncio.create_subprocess_exec(
            "sops",
            "--input-type",
            "json",
            "--output-type",
            "json",
            "-d",
            str(self.encrypted_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            logger.warning(
                "sops_decrypt_failed",
                returncode=process.returncode,
                stderr=stderr.decode() if stderr else "",
            )
            raise SecretStoreError("SOPS decrypt failed for %s" % self.encrypted_path)

        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise SecretStoreError("Decrypted secrets are not valid JSON") from e


def get_secret_store(
    path: Optional[str] = None, sops_enabled: bool = False, ephemeral: bool = False
) -> SecretStore:
    """Factory: file-backed store, or in-memory when ``ephemeral`` or no path."""
    if ephemeral or not path:
        logger.warning("secret_store_ephemeral", reason="no persistence requested")
        return InMemorySecretStore()
    return JsonFileSecretStore(path, sops_enabled=sops_enabled)

"""Unit tests for the secret store adapters."""

import json
import os
import stat
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config.exceptions import SecretStoreError
from statuslight.src.adapters.secret_store import (
    InMemorySecretStore,
    JsonFileSecretStore,
    SecretKeys,
    get_secret_store,
)


class TestInMemorySecretStore:
    @pytest.mark.asyncio
    async def test_store_retrieve_delete(self):
        store = InMemorySecretStore()

        await store.store("abc", SecretKeys.GOVEE_API_KEY)
        assert await store.retrieve(SecretKeys.GOVEE_API_KEY) == "abc"

        await store.delete(SecretKeys.GOVEE_API_KEY)
        await store.delete(SecretKeys.GOVEE_API_KEY)
        assert await store.retrieve(SecretKeys.GOVEE_API_KEY) is None

    @pytest.mark.asyncio
    async def test_json_helpers(self):
        store = InMemorySecretStore()

        await store.store_json({"dev-1": True}, SecretKeys.DEVICE_ACTIVE_STATES)

        assert await store.retrieve_json(SecretKeys.DEVICE_ACTIVE_STATES) == {"dev-1": True}
        assert await store.retrieve_json(SecretKeys.COLOR_MAPPING) is None

    @pytest.mark.asyncio
    async def test_corrupted_json(self):
        store = InMemorySecretStore({SecretKeys.SELECTED_DEVICES: "{not json"})

        with pytest.raises(SecretStoreError):
            await store.retrieve_json(SecretKeys.SELECTED_DEVICES)


class TestJsonFileSecretStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "statuslight" / "secrets.json"

        await JsonFileSecretStore(str(path)).store("secret", SecretKeys.GOVEE_API_KEY)

        assert await JsonFileSecretStore(str(path)).retrieve(SecretKeys.GOVEE_API_KEY) == "secret"
        assert json.loads(path.read_text()) == {SecretKeys.GOVEE_API_KEY: "secret"}

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    async def test_file_is_private(self, tmp_path):
        path = tmp_path / "secrets.json"

        await JsonFileSecretStore(str(path)).store("secret", SecretKeys.GOVEE_API_KEY)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = JsonFileSecretStore(str(tmp_path / "secrets.json"))
        await store.store("a", SecretKeys.MS_TOKENS)
        await store.store("b", SecretKeys.GOVEE_API_KEY)

        await store.delete(SecretKeys.MS_TOKENS)

        assert await store.retrieve(SecretKeys.MS_TOKENS) is None
        assert await store.retrieve(SecretKeys.GOVEE_API_KEY) == "b"

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileSecretStore(str(tmp_path / "absent.json"))

        assert await store.retrieve(SecretKeys.MS_TOKENS) is None

    @pytest.mark.asyncio
    async def test_unreadable_file(self, tmp_path):
        path = tmp_path / "secrets.json"
        path.write_text("garbage")

        with pytest.raises(SecretStoreError):
            await JsonFileSecretStore(str(path)).retrieve(SecretKeys.MS_TOKENS)

    @pytest.mark.asyncio
    async def test_sops_encrypts_and_removes_plaintext(self, tmp_path):
        path = tmp_path / "secrets.json"
        process = MagicMock()
        process.returncode = 0
        process.communicate = AsyncMock(return_value=(b'{"sops": "encrypted"}', b""))

        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=process)
        ) as exec_mock:
            await JsonFileSecretStore(str(path), sops_enabled=True).store(
                "secret", SecretKeys.GOVEE_API_KEY
            )

        assert exec_mock.call_args[0][0] == "sops"
        assert "-e" in exec_mock.call_args[0]
        assert not path.exists()
        assert (tmp_path / "secrets.json.enc").read_bytes() == b'{"sops": "encrypted"}'

    @pytest.mark.asyncio
    async def test_sops_decrypt_failure(self, tmp_path):
        (tmp_path / "secrets.json.enc").write_text("{}")
        process = MagicMock()
        process.returncode = 1
        process.communicate = AsyncMock(return_value=(b"", b"no key"))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(SecretStoreError):
                await JsonFileSecretStore(
                    str(tmp_path / "secrets.json"), sops_enabled=True
                ).retrieve(SecretKeys.MS_TOKENS)


def test_factory(tmp_path):
    assert isinstance(get_secret_store(ephemeral=True), InMemorySecretStore)
    assert isinstance(get_secret_store(None), InMemorySecretStore)
    assert isinstance(get_secret_store(str(tmp_path / "s.json")), JsonFileSecretStore)

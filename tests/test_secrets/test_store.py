"""Tests for SecretStore fallback, lookup order and remediation text."""

import pytest

from git_app_auth.config.settings import SecretRef
from git_app_auth.enums import SecretKind, StorageBackend
from git_app_auth.exceptions import KeyPermissionError, SecretNotFoundError, StorageUnavailableError
from git_app_auth.secrets.store import (
    format_keyring_unavailable_error,
    keyring_install_instructions,
    read_secret_file,
    validate_secret_file,
)


class TestPut:
    def test_keyring_preferred(self, memory_store, memory_keyring, memory_files):
        backend = memory_store.put("app-12345", SecretKind.PRIVATE_KEY, "pem")

        assert backend is StorageBackend.KEYRING
        assert memory_keyring.entries[("app-12345", "private_key")] == "pem"
        assert memory_files.entries == {}

    def test_falls_back_to_files_with_source_path(self, headless_store, memory_files, key_file):
        backend = headless_store.put("app-12345", SecretKind.PRIVATE_KEY, "pem", source_path=key_file)

        assert backend is StorageBackend.FILESYSTEM
        assert memory_files.entries[("app-12345", "private_key")] == "pem"

    def test_no_fallback_without_source_path(self, headless_store, memory_files):
        with pytest.raises(StorageUnavailableError) as exc_info:
            headless_store.put("app-12345", SecretKind.PRIVATE_KEY, "pem")

        message = str(exc_info.value)
        assert "--key-file" in message
        assert "GH_APP_PRIVATE_KEY" in message
        assert "apt install gnome-keyring" in message
        assert memory_files.entries == {}

    def test_filesystem_requested(self, memory_store, memory_keyring, memory_files, key_file):
        backend = memory_store.put(
            "app-12345", SecretKind.PRIVATE_KEY, "pem", source_path=key_file, backend=StorageBackend.FILESYSTEM
        )

        assert backend is StorageBackend.FILESYSTEM
        assert memory_keyring.entries == {}
        assert memory_files.entries[("app-12345", "private_key")] == "pem"

    def test_filesystem_requested_without_source_path(self, memory_store):
        with pytest.raises(StorageUnavailableError, match="persistent"):
            memory_store.put("app-12345", SecretKind.PRIVATE_KEY, "pem", backend=StorageBackend.FILESYSTEM)


class TestGet:
    def test_from_keyring(self, memory_store, memory_keyring):
        memory_keyring.set("pat-work", "token", "ghp_x")

        assert memory_store.get("pat-work", SecretKind.TOKEN) == ("ghp_x", StorageBackend.KEYRING)

    def test_unavailable_keyring_falls_through_to_file(self, headless_store, key_file, private_key_pem):
        value, backend = headless_store.get("app-12345", SecretKind.PRIVATE_KEY, source_path=key_file)

        assert value == private_key_pem
        assert backend is StorageBackend.FILESYSTEM

    def test_filesystem_ref_skips_keyring(self, memory_store, memory_keyring, key_file, private_key_pem):
        memory_keyring.set("app-12345", "private_key", "stale")
        ref = SecretRef(backend=StorageBackend.FILESYSTEM, id="app-12345", kind=SecretKind.PRIVATE_KEY, path=key_file)

        assert memory_store.get_ref(ref) == (private_key_pem, StorageBackend.FILESYSTEM)

    def test_encrypted_store_used_when_file_gone(self, headless_store, memory_files, tmp_path):
        memory_files.set("app-12345", "private_key", "pem")

        value, backend = headless_store.get("app-12345", SecretKind.PRIVATE_KEY, source_path=tmp_path / "gone.pem")

        assert value == "pem"
        assert backend is StorageBackend.FILESYSTEM

    def test_not_found(self, memory_store):
        with pytest.raises(SecretNotFoundError) as exc_info:
            memory_store.get("app-12345", SecretKind.PRIVATE_KEY)

        assert exc_info.value.reference == "keyring:app-12345/private_key"

    def test_permissive_file_rejected(self, headless_store, key_file):
        key_file.chmod(0o644)

        with pytest.raises(KeyPermissionError):
            headless_store.get("app-12345", SecretKind.PRIVATE_KEY, source_path=key_file)


class TestDelete:
    def test_removes_from_both(self, memory_store, memory_keyring, memory_files):
        memory_keyring.set("pat-work", "token", "a")
        memory_files.set("pat-work", "token", "a")

        assert memory_store.delete("pat-work", SecretKind.TOKEN) is True
        assert memory_keyring.entries == {}
        assert memory_files.entries == {}

    def test_tolerates_unavailable_keyring(self, headless_store, memory_files):
        memory_files.set("pat-work", "token", "a")

        assert headless_store.delete("pat-work", SecretKind.TOKEN) is True

    def test_nothing_to_delete(self, memory_store):
        assert memory_store.delete("pat-work", SecretKind.TOKEN) is False


class TestSecretFiles:
    @pytest.mark.parametrize("mode", [0o600, 0o400])
    def test_owner_only_modes_accepted(self, key_file, mode):
        key_file.chmod(mode)

        validate_secret_file(key_file)

    @pytest.mark.parametrize("mode", [0o640, 0o604, 0o644])
    def test_group_or_other_readable_rejected(self, key_file, mode):
        key_file.chmod(mode)

        with pytest.raises(KeyPermissionError) as exc_info:
            validate_secret_file(key_file)

        assert f"{mode:o}" in exc_info.value.message
        assert exc_info.value.suggestion == f"chmod 600 {key_file}"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SecretNotFoundError):
            read_secret_file(tmp_path / "missing.pem")


class TestRemediation:
    @pytest.mark.parametrize(
        ("platform", "expected"),
        [
            ("linux", "Without root"),
            ("darwin", "Keychain"),
            ("win32", "Credential Manager"),
            ("freebsd13", "pkg install"),
            ("sunos5", "--key-file"),
        ],
    )
    def test_install_instructions(self, platform, expected):
        assert expected in keyring_install_instructions(platform)

    def test_unavailable_error_with_key_file(self):
        message = format_keyring_unavailable_error("linux", has_key_file=True)

        assert "--key-file to specify your key file path (recommended)\n" in message
        assert "setup app --app-id" not in message

    def test_unavailable_error_without_key_file(self):
        message = format_keyring_unavailable_error("darwin", has_key_file=False)

        assert "setup app --app-id" in message
        assert "Keychain" in message

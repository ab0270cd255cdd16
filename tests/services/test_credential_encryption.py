"""Tests for AES-256-GCM credential encryption with versioned envelope."""

import base64
import json
import os
import platform
import stat

import pytest

from src.services.credential_encryption import (
    KEY_FILENAME,
    CredentialDecryptionError,
    credential_aad,
    decrypt_credentials,
    encrypt_credentials,
    get_or_create_key,
)


@pytest.fixture
def temp_key_dir(tmp_path):
    """Provide a temporary directory for key file storage."""
    return str(tmp_path)


@pytest.fixture
def key() -> bytes:
    return os.urandom(32)


class TestKeyManagement:
    """Tests for encryption key lifecycle."""

    def test_get_or_create_key_creates_file(self, temp_key_dir):
        """First call creates key file and returns 32-byte key."""
        key = get_or_create_key(key_dir=temp_key_dir)
        assert len(key) == 32
        assert os.path.exists(os.path.join(temp_key_dir, KEY_FILENAME))

    def test_get_or_create_key_is_idempotent(self, temp_key_dir):
        assert get_or_create_key(key_dir=temp_key_dir) == get_or_create_key(key_dir=temp_key_dir)

    def test_defaults_to_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REVIEWPULSE_DATA_DIR", str(tmp_path / "data"))
        get_or_create_key()
        assert (tmp_path / "data" / KEY_FILENAME).exists()

    @pytest.mark.skipif(platform.system() == "Windows", reason="Unix permissions")
    def test_key_file_has_restricted_permissions(self, temp_key_dir):
        get_or_create_key(key_dir=temp_key_dir)
        mode = os.stat(os.path.join(temp_key_dir, KEY_FILENAME)).st_mode
        assert stat.S_IMODE(mode) == 0o600

    @pytest.mark.skipif(platform.system() == "Windows", reason="Unix permissions")
    def test_permissive_key_file_warns(self, temp_key_dir, caplog):
        import logging

        key_path = os.path.join(temp_key_dir, KEY_FILENAME)
        with open(key_path, "wb") as f:
            f.write(os.urandom(32))
        os.chmod(key_path, 0o644)
        with caplog.at_level(logging.WARNING):
            get_or_create_key(key_dir=temp_key_dir)
        assert any("permissions" in msg and "600" in msg for msg in caplog.messages)

    def test_invalid_key_length_raises(self, temp_key_dir):
        with open(os.path.join(temp_key_dir, KEY_FILENAME), "wb") as f:
            f.write(b"too_short")
        with pytest.raises(ValueError, match="invalid length"):
            get_or_create_key(key_dir=temp_key_dir)

    @pytest.mark.skipif(platform.system() == "Windows", reason="symlinks")
    def test_symlinked_key_file_refused(self, tmp_path):
        real = tmp_path / "real_key"
        real.write_bytes(os.urandom(32))
        key_dir = tmp_path / "keys"
        key_dir.mkdir()
        (key_dir / KEY_FILENAME).symlink_to(real)
        with pytest.raises(ValueError, match="symlink"):
            get_or_create_key(key_dir=key_dir)

    def test_env_key_takes_precedence(self, temp_key_dir, monkeypatch):
        env_key = os.urandom(32)
        monkeypatch.setenv("REVIEWPULSE_CREDENTIAL_KEY", base64.b64encode(env_key).decode())
        assert get_or_create_key(key_dir=temp_key_dir) == env_key
        assert not os.path.exists(os.path.join(temp_key_dir, KEY_FILENAME))

    def test_env_key_invalid_base64(self, monkeypatch):
        monkeypatch.setenv("REVIEWPULSE_CREDENTIAL_KEY", "not base64!!")
        with pytest.raises(ValueError, match="invalid base64"):
            get_or_create_key()

    def test_env_key_file(self, tmp_path, monkeypatch):
        path = tmp_path / "mounted.key"
        path.write_bytes(b"k" * 32)
        monkeypatch.setenv("REVIEWPULSE_CREDENTIAL_KEY_FILE", str(path))
        assert get_or_create_key() == b"k" * 32


class TestEnvelope:
    def test_round_trip(self, key):
        blob = encrypt_credentials({"api_key": "abc", "account": 7}, key)
        assert decrypt_credentials(blob, key) == {"api_key": "abc", "account": 7}

    def test_envelope_shape(self, key):
        envelope = json.loads(encrypt_credentials({"a": 1}, key))
        assert envelope["v"] == 1
        assert envelope["alg"] == "AES-256-GCM"
        assert len(base64.b64decode(envelope["nonce"])) == 12

    def test_nonce_is_random(self, key):
        assert encrypt_credentials({"a": 1}, key) != encrypt_credentials({"a": 1}, key)

    def test_aad_binds_blob_to_source(self, key):
        aad = credential_aad("brand-1", "GOOGLE", "place-1")
        blob = encrypt_credentials({"token": "t"}, key, aad=aad)
        assert decrypt_credentials(blob, key, aad=aad) == {"token": "t"}
        with pytest.raises(CredentialDecryptionError):
            decrypt_credentials(blob, key, aad=credential_aad("brand-1", "GOOGLE", "place-2"))

    def test_wrong_key(self, key):
        blob = encrypt_credentials({"a": 1}, key)
        with pytest.raises(CredentialDecryptionError, match="Decryption failed"):
            decrypt_credentials(blob, os.urandom(32))

    def test_wrong_key_length(self, key):
        with pytest.raises(ValueError):
            encrypt_credentials({"a": 1}, b"short")
        with pytest.raises(CredentialDecryptionError, match="exactly 32 bytes"):
            decrypt_credentials(encrypt_credentials({"a": 1}, key), b"short")

    @pytest.mark.parametrize(
        "mutation,match",
        [
            (lambda e: {**e, "v": 2}, "Unsupported envelope version"),
            (lambda e: {**e, "alg": "DES"}, "Unsupported algorithm"),
            (lambda e: {k: v for k, v in e.items() if k != "ct"}, "Malformed"),
            (lambda e: {**e, "nonce": base64.b64encode(b"short").decode()}, "nonce length"),
        ],
    )
    def test_tampered_envelopes(self, key, mutation, match):
        envelope = json.loads(encrypt_credentials({"a": 1}, key))
        with pytest.raises(CredentialDecryptionError, match=match):
            decrypt_credentials(json.dumps(mutation(envelope)), key)

    def test_not_json(self, key):
        with pytest.raises(CredentialDecryptionError, match="Invalid envelope"):
            decrypt_credentials("not json", key)

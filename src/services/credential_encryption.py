"""AES-256-GCM encryption for review-source credential blobs.

A source configured with the API auth method may carry platform credentials
(API keys, OAuth tokens). They are stored only as an opaque envelope and are
never returned by the API.

Key source precedence:
    1. REVIEWPULSE_CREDENTIAL_KEY env var (base64-encoded 32-byte key)
    2. REVIEWPULSE_CREDENTIAL_KEY_FILE env var (path to raw key file)
    3. Key file in the data directory (auto-generated on first use)

Envelope format: {"v": 1, "alg": "AES-256-GCM", "nonce": <b64>, "ct": <b64>}.
The AAD binds a blob to its source key so an envelope copied onto another
source fails to decrypt.
"""

import base64
import binascii
import json
import logging
import os
import platform
import stat
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.utils.content_hash import compound_hash
from src.utils.paths import get_data_dir

logger = logging.getLogger(__name__)

KEY_FILENAME = ".reviewpulse_key"
_CURRENT_VERSION = 1
_ALGORITHM = "AES-256-GCM"
_REQUIRED_KEY_LENGTH = 32
_NONCE_LENGTH = 12


class CredentialDecryptionError(Exception):
    """Raised when a credential envelope cannot be decrypted."""


def credential_aad(brand_id: str, source_type: str, external_profile_id: str) -> str:
    """Associated data binding an envelope to one source key."""
    return compound_hash(brand_id, source_type, external_profile_id)


def _check_length(key: bytes, origin: str) -> bytes:
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise ValueError(
            f"{origin} has invalid length {len(key)} (expected {_REQUIRED_KEY_LENGTH})"
        )
    return key


def _read_key_file(path: Path) -> bytes:
    if path.is_symlink():
        raise ValueError(f"Key file {path} is a symlink; refusing to follow it")
    if not path.is_file():
        raise ValueError(f"Key file {path} does not exist or is not a regular file")
    return _check_length(path.read_bytes(), f"Key file {path}")


def get_or_create_key(key_dir: str | Path | None = None) -> bytes:
    """Load or generate the 32-byte AES-256 key.

    Args:
        key_dir: Directory for the generated key file (source 3 only).
            Defaults to the data directory.

    Returns:
        32-byte encryption key.

    Raises:
        ValueError: Invalid base64, wrong length or unusable key file.
    """
    env_key = os.environ.get("REVIEWPULSE_CREDENTIAL_KEY", "").strip()
    if env_key:
        try:
            key = base64.b64decode(env_key, validate=True)
        except binascii.Error as e:
            raise ValueError(f"REVIEWPULSE_CREDENTIAL_KEY contains invalid base64: {e}") from e
        return _check_length(key, "REVIEWPULSE_CREDENTIAL_KEY")

    env_key_file = os.environ.get("REVIEWPULSE_CREDENTIAL_KEY_FILE", "").strip()
    if env_key_file:
        return _read_key_file(Path(env_key_file))

    directory = Path(key_dir) if key_dir is not None else get_data_dir()
    directory.mkdir(parents=True, exist_ok=True)
    key_path = directory / KEY_FILENAME

    if key_path.exists():
        key = _read_key_file(key_path)
        if platform.system() != "Windows":
            mode = stat.S_IMODE(key_path.stat().st_mode)
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                logger.warning("Key file %s has permissions %o, expected 600", key_path, mode)
        return key

    key = os.urandom(_REQUIRED_KEY_LENGTH)
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        # Another process created it between the exists() check and here.
        return _read_key_file(key_path)
    try:
        os.write(fd, key)
    finally:
        os.close(fd)

    logger.info("Generated new credential key at %s", key_path)
    return key


def encrypt_credentials(credentials: dict, key: bytes, aad: str = "") -> str:
    """Encrypt a credentials dict into a versioned JSON envelope.

    Raises:
        ValueError: If key is not exactly 32 bytes.
    """
    _check_length(key, "Encryption key")
    nonce = os.urandom(_NONCE_LENGTH)
    plaintext = json.dumps(credentials, sort_keys=True).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad.encode("utf-8") if aad else None)
    return json.dumps(
        {
            "v": _CURRENT_VERSION,
            "alg": _ALGORITHM,
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ct": base64.b64encode(ciphertext).decode("ascii"),
        }
    )


def decrypt_credentials(encrypted: str, key: bytes, aad: str = "") -> dict:
    """Decrypt an envelope produced by encrypt_credentials.

    Raises:
        CredentialDecryptionError: On any failure, wrong key length included.
    """
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise CredentialDecryptionError(
            f"Decryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes (got {len(key)})"
        )
    try:
        envelope = json.loads(encrypted)
    except (json.JSONDecodeError, TypeError) as e:
        raise CredentialDecryptionError(f"Invalid envelope format: {e}") from e
    if not isinstance(envelope, dict):
        raise CredentialDecryptionError("Envelope is not a JSON object")

    if envelope.get("v") != _CURRENT_VERSION:
        raise CredentialDecryptionError(
            f"Unsupported envelope version {envelope.get('v')} (expected {_CURRENT_VERSION})"
        )
    if envelope.get("alg") != _ALGORITHM:
        raise CredentialDecryptionError(
            f"Unsupported algorithm '{envelope.get('alg')}' (expected '{_ALGORITHM}')"
        )

    try:
        nonce = base64.b64decode(envelope["nonce"], validate=True)
        ciphertext = base64.b64decode(envelope["ct"], validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise CredentialDecryptionError(f"Malformed envelope fields: {e}") from e
    if len(nonce) != _NONCE_LENGTH:
        raise CredentialDecryptionError(
            f"Invalid nonce length {len(nonce)} (expected {_NONCE_LENGTH})"
        )

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, aad.encode("utf-8") if aad else None)
        result = json.loads(plaintext.decode("utf-8"))
    except Exception as e:
        raise CredentialDecryptionError(f"Decryption failed: {e}") from e
    if not isinstance(result, dict):
        raise CredentialDecryptionError(
            f"Decrypted payload is not a dict (got {type(result).__name__})"
        )
    return result

"""
AES-256 cipher adapter for Shuttle frames.

Frames are encrypted block by block (AES-ECB, no padding) so that the
receiver can decrypt the 256-byte header on its own, learn the frame
type, and only then touch the payload region. Every frame size is a
multiple of the AES block size, so ciphertext and plaintext have the
same length.
"""

import logging
from typing import Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .protocol import HEADER_LEN

logger = logging.getLogger(__name__)

KEY_LEN = 32
BLOCK_LEN = algorithms.AES.block_size // 8


class CipherError(ValueError):
    """Raised when a key is unusable or a block cannot be decrypted."""


def prepare_key(key_text: Union[str, bytes]) -> bytes:
    """
    Turn operator input into a 32-byte AES-256 key.

    A 64-character hex string is decoded. Anything else is taken as raw
    bytes and zero-padded or truncated to 32 bytes.
    """
    if isinstance(key_text, str):
        key_data = key_text.strip().encode("utf-8")
    else:
        key_data = bytes(key_text)

    if len(key_data) == 2 * KEY_LEN:
        try:
            return bytes.fromhex(key_data.decode("ascii"))
        except ValueError:
            logger.debug("Key is %d bytes but not hex; using raw bytes", len(key_data))

    if len(key_data) < KEY_LEN:
        logger.warning("Key was %d bytes, padded to %d bytes", len(key_data), KEY_LEN)
        key_data = key_data.ljust(KEY_LEN, b"\0")
    elif len(key_data) > KEY_LEN:
        logger.warning("Key was %d bytes, truncated to %d bytes", len(key_data), KEY_LEN)
        key_data = key_data[:KEY_LEN]

    return key_data


class FrameCipher:
    """Stateless encrypt/decrypt wrapper applied to whole frames or regions."""

    def __init__(self, key: bytes):
        if len(key) != KEY_LEN:
            raise CipherError(f"AES-256 needs a {KEY_LEN}-byte key, got {len(key)}")
        self._cipher = Cipher(algorithms.AES(key), modes.ECB())

    @classmethod
    def from_text(cls, key_text: Union[str, bytes]) -> "FrameCipher":
        return cls(prepare_key(key_text))

    # ------------------------------------------------------------------

    def encrypt(self, data: bytes) -> bytes:
        encryptor = self._cipher.encryptor()
        try:
            return encryptor.update(data) + encryptor.finalize()
        except ValueError as e:
            raise CipherError(f"cannot encrypt {len(data)} bytes: {e}") from e

    def decrypt(self, data: bytes) -> bytes:
        decryptor = self._cipher.decryptor()
        try:
            return decryptor.update(data) + decryptor.finalize()
        except ValueError as e:
            raise CipherError(f"cannot decrypt {len(data)} bytes: {e}") from e

    # ------------------------------------------------------------------

    def seal_outgoing(self, frame: bytes) -> bytes:
        return self.encrypt(frame)

    def open_incoming(self, sealed: bytes) -> bytes:
        return self.decrypt(sealed)

    def open_header(self, sealed: bytes) -> bytes:
        """Decrypt only the header region of a sealed frame."""
        if len(sealed) < HEADER_LEN:
            raise CipherError(
                f"sealed frame of {len(sealed)} bytes is shorter than the header"
            )
        return self.decrypt(sealed[:HEADER_LEN])

    def open_payload(self, sealed_payload: bytes) -> bytes:
        """Decrypt a DATA payload region that was split off its header."""
        return self.decrypt(sealed_payload)

import secrets
from typing import Callable

from .. import generic
from ._legacy import legacy_derive_object_key
from ._util import aes_cbc_decrypt, aes_cbc_encrypt, rc4_encrypt
from .api import CryptFilter

__all__ = ['RC4CryptFilter', 'AESCryptFilter', 'RandomBytesFn']

RandomBytesFn = Callable[[int], bytes]


class RC4CryptFilter(CryptFilter):
    """
    RC4-based crypt filter, used by V1 and V2 handlers.

    :param shared_key:
        The file encryption key.
    """

    method = generic.NameObject('/V2')

    @property
    def keylen(self) -> int:
        return len(self.shared_key)

    def encrypt(self, key, plaintext: bytes) -> bytes:
        return rc4_encrypt(key, plaintext)

    def decrypt(self, key, ciphertext: bytes) -> bytes:
        return rc4_encrypt(key, ciphertext)

    def derive_object_key(self, idnum, generation) -> bytes:
        """
        Derive the local key for the given object ID and generation number,
        by calling :func:`.legacy_derive_object_key`.
        """
        return legacy_derive_object_key(self.shared_key, idnum, generation)


class AESCryptFilter(CryptFilter):
    """
    AES crypt filter in CBC mode, used by V4 (AES-128) and V5 (AES-256)
    handlers.

    :param shared_key:
        The file encryption key, 16 or 32 bytes long.
    :param random_bytes:
        Source of initialisation vectors.
    """

    def __init__(self, shared_key: bytes,
                 random_bytes: RandomBytesFn = secrets.token_bytes):
        if len(shared_key) not in (16, 32):
            raise NotImplementedError("Only AES-128 and AES-256 are supported")
        super().__init__(shared_key)
        self._random_bytes = random_bytes

    @property
    def keylen(self) -> int:
        return len(self.shared_key)

    @property
    def method(self) -> generic.NameObject:
        return generic.NameObject(
            '/AESV2' if self.keylen == 16 else '/AESV3'
        )

    def encrypt(self, key, plaintext: bytes) -> bytes:
        """
        Encrypt data using AES in CBC mode, with PKCS#7 padding.

        :return:
            The resulting ciphertext, prepended with a fresh 16-byte
            initialisation vector.
        """
        iv, ciphertext = aes_cbc_encrypt(
            key, plaintext, self._random_bytes(16)
        )
        return iv + ciphertext

    def decrypt(self, key, ciphertext: bytes) -> bytes:
        iv, data = ciphertext[:16], ciphertext[16:]
        return aes_cbc_decrypt(key, data, iv)

    def derive_object_key(self, idnum, generation) -> bytes:
        """
        Derive the local key for the given object ID and generation number.

        AES-256 uses the file encryption key as-is; AES-128 goes through
        :func:`.legacy_derive_object_key`.
        """
        if self.keylen == 32:
            return self.shared_key
        return legacy_derive_object_key(
            self.shared_key, idnum, generation, use_aes=True
        )

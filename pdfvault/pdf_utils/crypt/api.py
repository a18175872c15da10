import enum
from dataclasses import dataclass
from typing import Optional

from .. import generic, misc

__all__ = [
    'UnsupportedAlgorithmError', 'InvalidPasswordCharacterError',
    'PdfKeyNotAvailableError', 'AuthStatus', 'AuthResult',
    'SecurityHandlerVersion', 'StandardSecuritySettingsRevision',
    'CryptFilter', 'STD_CF',
]


class UnsupportedAlgorithmError(misc.PdfError):
    """
    Raised when a security handler version has no associated algorithm.
    """
    pass


class InvalidPasswordCharacterError(misc.PdfError):
    """
    Raised when a password for a legacy security handler contains
    characters outside the single-byte range.
    """
    pass


class PdfKeyNotAvailableError(misc.PdfError):
    pass


class AuthStatus(misc.OrderedEnum):
    """
    Describes the status after an authentication attempt.
    """

    FAILED = 0
    USER = 1
    OWNER = 2


@dataclass(frozen=True)
class AuthResult:
    """
    Describes the result of an authentication attempt.
    """

    status: AuthStatus
    """
    Authentication status after the authentication attempt.
    """

    permission_flags: Optional[int] = None
    """
    The ``/P`` value of the security handler, if the user authenticated
    with the user password.
    """


@enum.unique
class SecurityHandlerVersion(misc.VersionEnum):
    """
    Indicates the security handler's version (the ``/V`` entry).

    The enum constants are named more or less in accordance with the
    cryptographic algorithms they permit.
    """
    RC4_40 = 1
    RC4_LONGER_KEYS = 2
    RC4_OR_AES128 = 4
    AES256 = 5

    OTHER = None
    """
    Placeholder value for versions that this library does not implement.
    """

    def as_pdf_object(self) -> generic.PdfObject:
        val = self.value
        return generic.NullObject() if val is None \
            else generic.NumberObject(val)

    @classmethod
    def from_number(cls, value) -> 'SecurityHandlerVersion':
        try:
            return SecurityHandlerVersion(value)
        except ValueError:
            return SecurityHandlerVersion.OTHER


@enum.unique
class StandardSecuritySettingsRevision(misc.VersionEnum):
    """Indicate the standard security handler revision (the ``/R`` entry)."""

    RC4_BASIC = 2
    RC4_EXTENDED = 3
    RC4_OR_AES128 = 4
    AES256 = 5
    OTHER = None

    def as_pdf_object(self) -> generic.PdfObject:
        val = self.value
        return generic.NullObject() if val is None \
            else generic.NumberObject(val)

    @classmethod
    def from_number(cls, value) -> 'StandardSecuritySettingsRevision':
        try:
            return StandardSecuritySettingsRevision(value)
        except ValueError:
            return StandardSecuritySettingsRevision.OTHER


STD_CF = generic.NameObject('/StdCF')


class CryptFilter:
    """
    Generic abstract crypt filter class.

    A crypt filter knows how to derive a per-object key from the file
    encryption key, and how to encrypt and decrypt data with that key.
    """

    def __init__(self, shared_key: bytes):
        self._shared_key = shared_key

    @property
    def method(self) -> generic.NameObject:
        """
        :return:
            The method name (``/CFM`` entry) associated with this crypt filter.
        """
        raise NotImplementedError

    @property
    def keylen(self) -> int:
        """
        :return:
            The keylength (in bytes) of the key associated with this crypt
            filter.
        """
        raise NotImplementedError

    @property
    def shared_key(self) -> bytes:
        """
        The file encryption key.
        """
        return self._shared_key

    def encrypt(self, key, plaintext: bytes) -> bytes:
        """
        Encrypt plaintext with the specified key.

        :param key:
            The current local key, which may or may not be equal to this
            crypt filter's global key.
        :param plaintext:
            Plaintext to encrypt.
        :return:
            The resulting ciphertext.
        """
        raise NotImplementedError

    def decrypt(self, key, ciphertext: bytes) -> bytes:
        """
        Decrypt ciphertext with the specified key.

        :param key:
            The current local key, which may or may not be equal to this
            crypt filter's global key.
        :param ciphertext:
            Ciphertext to decrypt.
        :return:
            The resulting plaintext.
        """
        raise NotImplementedError

    def derive_object_key(self, idnum, generation) -> bytes:
        """
        Derive the encryption key for a specific object, based on the shared
        file encryption key.

        :param idnum:
            ID of the object being encrypted.
        :param generation:
            Generation number of the object being encrypted.
        :return:
            The local key to use for this object.
        """
        raise NotImplementedError

    def as_pdf_object(self) -> generic.DictionaryObject:
        """
        Serialise this crypt filter to a PDF crypt filter dictionary.

        :return:
            A PDF crypt filter dictionary.
        """
        return generic.DictionaryObject({
            generic.NameObject('/AuthEvent'): generic.NameObject('/DocOpen'),
            generic.NameObject('/CFM'): self.method,
            # the 2020 revision of the standard wants this in bytes
            generic.NameObject('/Length'): generic.NumberObject(self.keylen),
        })

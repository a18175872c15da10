"""
Utilities for PDF encryption with the standard security handler
(ISO 32000-1 § 7.6.3), covering:

* Legacy RC4-based encryption with 40-bit (V1/R2) and 128-bit (V2/R3) keys.
* AES-128 encryption with legacy key derivation (V4/R4).
* AES-256 encryption as defined by Adobe extension level 3 (V5/R5).

.. danger::
    The members of this package are all considered internal API, and are
    therefore subject to change without notice.

.. danger::
    One should also be aware that the legacy encryption scheme implemented
    here is (very) weak, and we only support it for compatibility reasons.
"""

from .api import (
    STD_CF,
    AuthResult,
    AuthStatus,
    CryptFilter,
    InvalidPasswordCharacterError,
    PdfKeyNotAvailableError,
    SecurityHandlerVersion,
    StandardSecuritySettingsRevision,
    UnsupportedAlgorithmError,
)
from .filters import AESCryptFilter, RC4CryptFilter
from .permissions import (
    SecurityOptions,
    StandardPermissions,
    UserPermissions,
    encode_permissions,
)
from .standard import StandardSecurityHandler

__all__ = [
    'StandardSecurityHandler',
    'SecurityOptions',
    'UserPermissions',
    'StandardPermissions',
    'encode_permissions',
    'AuthResult',
    'AuthStatus',
    'SecurityHandlerVersion',
    'StandardSecuritySettingsRevision',
    'CryptFilter',
    'RC4CryptFilter',
    'AESCryptFilter',
    'STD_CF',
    'UnsupportedAlgorithmError',
    'InvalidPasswordCharacterError',
    'PdfKeyNotAvailableError',
]

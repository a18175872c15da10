"""
Implementation of the standard (password-based) security handler.

The handler revision is not chosen by the caller: it follows from the
format version declared in the object graph's header.

========== === === ======== ============
Version    V   R   Key bits Crypt filter
========== === === ======== ============
1.4, 1.5   2   3   128      (none)
1.6, 1.7   4   4   128      ``/AESV2``
1.7ext3    5   5   256      ``/AESV3``
other      1   2   40       (none)
========== === === ======== ============

.. danger::
    The RC4-based handlers (V1 and V2) are cryptographically weak, and only
    exist for compatibility with old readers.
"""

import logging
import secrets
import struct
import time
from dataclasses import dataclass
from hashlib import md5, sha256
from typing import Callable, Optional, Tuple, Union

from .. import generic, misc
from ..config_utils import ConfigurationError
from ._legacy import (
    compute_o_value_legacy,
    compute_o_value_legacy_prep,
    compute_u_value_r2,
    compute_u_value_r34,
    legacy_normalise_pw,
    xor_key_rounds,
)
from ._util import (
    aes_cbc_decrypt,
    aes_cbc_encrypt,
    aes_ecb_decrypt,
    aes_ecb_encrypt,
    rc4_encrypt,
)
from .api import (
    STD_CF,
    AuthResult,
    AuthStatus,
    CryptFilter,
    PdfKeyNotAvailableError,
    SecurityHandlerVersion,
    StandardSecuritySettingsRevision,
    UnsupportedAlgorithmError,
)
from .filters import AESCryptFilter, RandomBytesFn, RC4CryptFilter
from .permissions import SecurityOptions, encode_permissions

__all__ = [
    'StandardSecurityHandler', 'select_algorithm', 'build_crypt_filter',
    'generate_file_id',
]

logger = logging.getLogger(__name__)

_V = SecurityHandlerVersion
_R = StandardSecuritySettingsRevision

_ALGORITHMS = {
    '1.4': (_V.RC4_LONGER_KEYS, _R.RC4_EXTENDED, 128),
    '1.5': (_V.RC4_LONGER_KEYS, _R.RC4_EXTENDED, 128),
    '1.6': (_V.RC4_OR_AES128, _R.RC4_OR_AES128, 128),
    '1.7': (_V.RC4_OR_AES128, _R.RC4_OR_AES128, 128),
    '1.7ext3': (_V.AES256, _R.AES256, 256),
}
_FALLBACK_ALGORITHM = (_V.RC4_40, _R.RC4_BASIC, 40)


def select_algorithm(version_string: str) \
        -> Tuple[SecurityHandlerVersion, StandardSecuritySettingsRevision, int]:
    """
    Look up the handler version, revision and key length (in bits) for
    a declared format version.

    :param version_string:
        A version string such as ``'1.7'`` or ``'1.7ext3'``.
    """
    return _ALGORITHMS.get(version_string, _FALLBACK_ALGORITHM)


def build_crypt_filter(version: SecurityHandlerVersion, file_key: bytes,
                       random_bytes: RandomBytesFn = secrets.token_bytes) \
        -> CryptFilter:
    """
    Instantiate the crypt filter that handles all strings and streams for
    a given handler version.

    :raises UnsupportedAlgorithmError:
        if the version has no associated algorithm.
    """
    if version in (_V.RC4_40, _V.RC4_LONGER_KEYS):
        return RC4CryptFilter(file_key)
    elif version in (_V.RC4_OR_AES128, _V.AES256):
        return AESCryptFilter(file_key, random_bytes=random_bytes)
    raise UnsupportedAlgorithmError(f"Unsupported algorithm '{version.value}'.")


def generate_file_id() -> bytes:
    """
    Generate a file identifier. Its only requirement is to be used
    consistently throughout the document, so the MD5 digest of the current
    time in milliseconds will do.
    """
    millis = time.time_ns() // 1_000_000
    return md5(str(millis).encode('ascii')).digest()  # lgtm


def _r5_normalise_pw(password: Optional[Union[str, bytes]]) -> bytes:
    """
    Encode a password as UTF-8 and truncate it to 127 bytes.

    Writers that keep only the low byte of each UTF-16 code unit produce
    the same bytes for ASCII passwords, but not for anything else.
    """
    # TODO apply SASLprep before encoding, so that non-ASCII passwords
    #  interoperate with readers that normalise
    if password is None:
        return b''
    if isinstance(password, str):
        password = password.encode('utf-8')
    return bytes(password[:127])


@dataclass
class _R5KeyEntry:
    hash_value: bytes
    validation_salt: bytes
    key_salt: bytes

    @classmethod
    def from_bytes(cls, entry: bytes) -> '_R5KeyEntry':
        assert len(entry) == 48
        return _R5KeyEntry(entry[:32], entry[32:40], entry[40:48])


def _r5_hash(pw_bytes: bytes, salt: bytes,
             u_entry: Optional[bytes] = None) -> bytes:
    # NOTE: revision 5 uses a single SHA-256 round, unlike revision 6
    h = sha256(pw_bytes)
    h.update(salt)
    if u_entry:
        h.update(u_entry)
    return h.digest()


def _r5_wrap_key(pw_bytes: bytes, key_salt: bytes, file_key: bytes,
                 u_entry: Optional[bytes] = None) -> bytes:
    interm_key = _r5_hash(pw_bytes, key_salt, u_entry)
    _, wrapped = aes_cbc_encrypt(
        interm_key, file_key, bytes(16), use_padding=False
    )
    assert len(wrapped) == 32
    return wrapped


def _r5_unwrap_key(pw_bytes: bytes, entry: _R5KeyEntry, e_entry: bytes,
                   u_entry: Optional[bytes] = None) -> bytes:
    interm_key = _r5_hash(pw_bytes, entry.key_salt, u_entry)
    return aes_cbc_decrypt(
        key=interm_key, data=e_entry, iv=bytes(16), use_padding=False
    )


class StandardSecurityHandler:
    """
    Standard security handler bound to one object graph.

    You shouldn't have to instantiate :class:`.StandardSecurityHandler`
    objects yourself: use :meth:`create` (or
    :meth:`.PdfObjectGraph.set_security`), which performs all key
    derivation before returning.

    :param graph:
        The :class:`~.graph.PdfObjectGraph` to register with.
    :param version:
        The ``/V`` entry.
    :param revision:
        The ``/R`` entry.
    :param keylen:
        Key length in bytes.
    :param perms:
        The ``/P`` entry, as a signed 32-bit integer.
    :param odata:
        The ``/O`` entry.
    :param udata:
        The ``/U`` entry.
    :param file_id:
        The file identifier.
    :param file_key:
        The file encryption key.
    :param oeseed:
        The ``/OE`` entry (revision 5 only).
    :param ueseed:
        The ``/UE`` entry (revision 5 only).
    :param encrypted_perms:
        The ``/Perms`` entry (revision 5 only).
    :param random_bytes:
        Source of initialisation vectors.
    """

    def __init__(self, graph, *, version: SecurityHandlerVersion,
                 revision: StandardSecuritySettingsRevision, keylen: int,
                 perms: int, odata: bytes, udata: bytes, file_id: bytes,
                 file_key: bytes, oeseed: Optional[bytes] = None,
                 ueseed: Optional[bytes] = None,
                 encrypted_perms: Optional[bytes] = None,
                 random_bytes: RandomBytesFn = secrets.token_bytes):
        if revision >= _R.AES256:
            if not (len(udata) == len(odata) == 48):
                raise misc.PdfError(
                    "/U and /O entries must be 48 bytes long in a "
                    "rev. 5 security handler"
                )
            if not oeseed or not ueseed \
                    or not (len(oeseed) == len(ueseed) == 32):
                raise misc.PdfError(
                    "/UE and /OE must be present and be 32 bytes long in a "
                    "rev. 5 security handler"
                )
            if not encrypted_perms or len(encrypted_perms) != 16:
                raise misc.PdfError(
                    "/Perms must be present and be 16 bytes long in a "
                    "rev. 5 security handler"
                )
        elif not (len(udata) == len(odata) == 32):
            raise misc.PdfError(
                "/U and /O entries must be 32 bytes long in a "
                "legacy security handler"
            )
        self.graph = graph
        self.version = version
        self.revision = revision
        self.keylen = keylen
        self.perms = perms
        self.odata = odata
        self.udata = udata
        self.oeseed = oeseed
        self.ueseed = ueseed
        self.encrypted_perms = encrypted_perms
        self.file_id = file_id
        self.crypt_filter = build_crypt_filter(
            version, file_key, random_bytes=random_bytes
        )
        self._encrypt_ref: Optional[generic.IndirectObject] = None

    @classmethod
    def create(cls, graph, options: SecurityOptions, *,
               file_id: Optional[bytes] = None,
               random_bytes: RandomBytesFn = secrets.token_bytes) \
            -> 'StandardSecurityHandler':
        """
        Derive a security handler for a graph from password and permission
        input.

        :param graph:
            The :class:`~.graph.PdfObjectGraph` whose header determines the
            algorithm.
        :param options:
            A :class:`.SecurityOptions` object.
        :param file_id:
            The file identifier to use. A fresh one is generated if not
            supplied.
        :param random_bytes:
            Cryptographically strong source of random bytes, used for
            revision 5 key material and for initialisation vectors.
        :raises ConfigurationError:
            if neither password is set.
        :raises InvalidPasswordCharacterError:
            if a revision 2-4 password has characters above U+00FF.
        """
        if not options.owner_password and not options.user_password:
            raise ConfigurationError(
                "Either an owner password or a user password must be "
                "specified."
            )
        version, revision, keylen_bits = select_algorithm(
            graph.header.version_string
        )
        logger.debug(
            "Selected standard security handler V=%s, R=%s with a %d-bit key "
            "for PDF version %s", version.value, revision.value, keylen_bits,
            graph.header.version_string
        )
        if version <= _V.RC4_LONGER_KEYS:
            logger.warning(
                "PDF version %s implies RC4 encryption, which is weak and "
                "only supported for compatibility.",
                graph.header.version_string
            )
        if file_id is None:
            file_id = generate_file_id()
        keylen = keylen_bits // 8
        if revision == _R.AES256:
            return cls._create_r5(graph, options, file_id, random_bytes)
        return cls._create_legacy(
            graph, options, version, revision, keylen, file_id, random_bytes
        )

    @classmethod
    def _create_legacy(cls, graph, options: SecurityOptions, version,
                       revision, keylen, file_id, random_bytes):
        user_pw = legacy_normalise_pw(options.user_password)
        owner_pw = (
            legacy_normalise_pw(options.owner_password)
            if options.owner_password else user_pw
        )
        perms = encode_permissions(options.permissions, revision)
        o_entry = compute_o_value_legacy(
            owner_pw, user_pw, revision.value, keylen
        )
        if revision == _R.RC4_BASIC:
            u_entry, key = compute_u_value_r2(user_pw, o_entry, perms, file_id)
        else:
            u_entry, key = compute_u_value_r34(
                user_pw, revision.value, keylen, o_entry, perms, file_id
            )
        return cls(
            graph, version=version, revision=revision, keylen=keylen,
            perms=perms, odata=o_entry, udata=u_entry, file_id=file_id,
            file_key=key, random_bytes=random_bytes
        )

    @classmethod
    def _create_r5(cls, graph, options: SecurityOptions, file_id,
                   random_bytes):
        # the order in which random bytes are drawn is fixed
        encryption_key = random_bytes(32)

        user_pw = _r5_normalise_pw(options.user_password)
        u_validation_salt = random_bytes(8)
        u_key_salt = random_bytes(8)
        u_entry = (
            _r5_hash(user_pw, u_validation_salt)
            + u_validation_salt + u_key_salt
        )
        ue_seed = _r5_wrap_key(user_pw, u_key_salt, encryption_key)

        owner_pw = (
            _r5_normalise_pw(options.owner_password)
            if options.owner_password else user_pw
        )
        o_validation_salt = random_bytes(8)
        o_key_salt = random_bytes(8)
        o_entry = (
            _r5_hash(owner_pw, o_validation_salt, u_entry)
            + o_validation_salt + o_key_salt
        )
        oe_seed = _r5_wrap_key(owner_pw, o_key_salt, encryption_key, u_entry)

        perms = encode_permissions(options.permissions, _R.AES256)
        extd_perms_bytes = (
            struct.pack('<i', perms) + (b'\xff' * 4) + b'Tadb'
            + random_bytes(4)
        )
        encrypted_perms = aes_ecb_encrypt(encryption_key, extd_perms_bytes)

        return cls(
            graph, version=_V.AES256, revision=_R.AES256, keylen=32,
            perms=perms, odata=o_entry, udata=u_entry, file_id=file_id,
            file_key=encryption_key, oeseed=oe_seed, ueseed=ue_seed,
            encrypted_perms=encrypted_perms, random_bytes=random_bytes
        )

    @property
    def file_key(self) -> bytes:
        """
        The file encryption key.
        """
        return self.crypt_filter.shared_key

    @property
    def encrypt_ref(self) -> Optional[generic.IndirectObject]:
        """
        Reference to the encryption dictionary, once :meth:`encrypt` has
        been called.
        """
        return self._encrypt_ref

    def as_pdf_object(self) -> generic.DictionaryObject:
        """
        Render the encryption dictionary.
        """
        result = generic.DictionaryObject()
        result['/Filter'] = generic.NameObject('/Standard')
        result['/V'] = self.version.as_pdf_object()
        if self.version >= _V.RC4_LONGER_KEYS:
            result['/Length'] = generic.NumberObject(self.keylen * 8)
        if self.version >= _V.RC4_OR_AES128:
            result['/CF'] = generic.DictionaryObject({
                STD_CF: self.crypt_filter.as_pdf_object()
            })
            result['/StmF'] = STD_CF
            result['/StrF'] = STD_CF
        result['/R'] = self.revision.as_pdf_object()
        result['/O'] = generic.ByteStringObject(self.odata)
        if self.revision >= _R.AES256:
            result['/OE'] = generic.ByteStringObject(self.oeseed)
        result['/U'] = generic.ByteStringObject(self.udata)
        if self.revision >= _R.AES256:
            result['/UE'] = generic.ByteStringObject(self.ueseed)
        result['/P'] = generic.NumberObject(self.perms)
        if self.revision >= _R.AES256:
            result['/Perms'] = generic.ByteStringObject(self.encrypted_perms)
        return result

    def encrypt(self, encrypt_ref: Optional[generic.IndirectObject] = None) \
            -> 'StandardSecurityHandler':
        """
        Register the file identifier and the encryption dictionary with the
        graph's trailer. This has to happen exactly once, before the graph
        is serialised.

        :param encrypt_ref:
            Reference to store the encryption dictionary under, replacing
            whatever was there. By default, a fresh reference is allocated.
        :raises misc.PdfWriteError:
            if the handler has already been registered.
        """
        if self._encrypt_ref is not None:
            raise misc.PdfWriteError(
                "This security handler has already registered its "
                "encryption dictionary."
            )
        graph = self.graph
        graph.trailer_info.id = graph.obj([self.file_id, self.file_id])
        if encrypt_ref is None:
            ref = graph.register(self.as_pdf_object())
        else:
            ref = encrypt_ref
            graph.assign(ref, self.as_pdf_object())
        self._encrypt_ref = ref
        graph.trailer_info.encrypt = ref
        logger.debug(
            "Registered encryption dictionary as object %d", ref.idnum
        )
        return self

    def get_encrypt_fn(self, idnum: int, generation: int = 0) \
            -> Callable[[bytes], bytes]:
        """
        Produce the function that encrypts string and stream data belonging
        to one indirect object.

        The object key is derived once; AES-based handlers draw a fresh
        initialisation vector on every invocation of the returned function.

        :param idnum:
            ID of the object being written.
        :param generation:
            Generation number of the object being written.
        """
        cf = self.crypt_filter
        key = cf.derive_object_key(idnum, generation)

        def _encrypt(data: bytes) -> bytes:
            return cf.encrypt(key, data)

        return _encrypt

    def get_decrypt_fn(self, idnum: int, generation: int = 0) \
            -> Callable[[bytes], bytes]:
        """
        Inverse of :meth:`get_encrypt_fn`.
        """
        cf = self.crypt_filter
        key = cf.derive_object_key(idnum, generation)

        def _decrypt(data: bytes) -> bytes:
            return cf.decrypt(key, data)

        return _decrypt

    def authenticate(self, password: Union[str, bytes]) -> AuthResult:
        """
        Check a password against the ``/O`` and ``/U`` entries.

        :param password:
            The password to check.
        :return:
            An :class:`.AuthResult` object indicating the level of access
            the password grants.
        :raises PdfKeyNotAvailableError:
            if a revision 5 password is correct, but the ``/Perms`` entry
            doesn't decrypt to the handler's permissions.
        """
        if self.revision >= _R.AES256:
            res, key = self._authenticate_r5(password)
        else:
            res, key = self._authenticate_legacy(
                legacy_normalise_pw(password)
            )
        if key is not None and key != self.file_key:
            # can only happen with a tampered /O or /U entry
            res, key = AuthStatus.FAILED, None
        logger.debug("Authentication result: %s", res.name)
        return AuthResult(
            status=res,
            permission_flags=self.perms if res == AuthStatus.USER else None
        )

    def _auth_user_password_legacy(self, password: bytes):
        rev = self.revision
        user_token = self.udata
        if rev == _R.RC4_BASIC:
            user_tok_supplied, key = compute_u_value_r2(
                password, self.odata, self.perms, self.file_id
            )
        else:
            user_tok_supplied, key = compute_u_value_r34(
                password, rev.value, self.keylen, self.odata, self.perms,
                self.file_id
            )
            # only the first 16 bytes are significant
            user_tok_supplied = user_tok_supplied[:16]
            user_token = user_token[:16]
        return user_tok_supplied == user_token, key

    def _authenticate_legacy(self, password: bytes) \
            -> Tuple[AuthStatus, Optional[bytes]]:
        # check the owner password first, by recovering the user password
        # from the /O entry
        rev = self.revision
        key = compute_o_value_legacy_prep(password, rev.value, self.keylen)
        if rev == _R.RC4_BASIC:
            prp_userpass = rc4_encrypt(key, self.odata)
        else:
            prp_userpass = xor_key_rounds(key, self.odata, range(19, -1, -1))
        owner_password, key = self._auth_user_password_legacy(prp_userpass)
        if owner_password:
            return AuthStatus.OWNER, key

        user_password, key = self._auth_user_password_legacy(password)
        if user_password:
            return AuthStatus.USER, key
        return AuthStatus.FAILED, None

    def _authenticate_r5(self, password) \
            -> Tuple[AuthStatus, Optional[bytes]]:
        pw_bytes = _r5_normalise_pw(password)
        o_entry_split = _R5KeyEntry.from_bytes(self.odata)
        u_entry_split = _R5KeyEntry.from_bytes(self.udata)

        if _r5_hash(pw_bytes, o_entry_split.validation_salt, self.udata) \
                == o_entry_split.hash_value:
            result = AuthStatus.OWNER
            key = _r5_unwrap_key(
                pw_bytes, o_entry_split, self.oeseed, self.udata
            )
        elif _r5_hash(pw_bytes, u_entry_split.validation_salt) \
                == u_entry_split.hash_value:
            result = AuthStatus.USER
            key = _r5_unwrap_key(pw_bytes, u_entry_split, self.ueseed)
        else:
            return AuthStatus.FAILED, None

        decrypted_p_entry = aes_ecb_decrypt(key, self.encrypted_perms)
        # known plaintext mandated by the standard
        perms_ok = decrypted_p_entry[9:12] == b'adb'
        perms_ok &= self.perms == struct.unpack('<i', decrypted_p_entry[:4])[0]
        if not perms_ok:
            raise PdfKeyNotAvailableError(
                "File decryption key didn't decrypt permission flags "
                "correctly -- file permissions may have been tampered with."
            )
        return result, key

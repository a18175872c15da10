"""
Key derivation for the RC4-era revisions (R2 to R4) of the standard security
handler, following algorithms 2 to 5 in ISO 32000-1 § 7.6.3.
"""
import struct
from hashlib import md5
from typing import Optional, Tuple, Union

from ._util import rc4_encrypt
from .api import InvalidPasswordCharacterError

__all__ = [
    'PASSWORD_PADDING', 'legacy_normalise_pw', 'pad_password',
    'compute_o_value_legacy_prep', 'compute_o_value_legacy',
    'derive_legacy_file_key', 'compute_u_value_r2', 'compute_u_value_r34',
    'legacy_derive_object_key', 'xor_key_rounds',
]

PASSWORD_PADDING = (
    b'\x28\xbf\x4e\x5e\x4e\x75\x8a\x41\x64\x00\x4e\x56'
    b'\xff\xfa\x01\x08\x2e\x2e\x00\xb6\xd0\x68\x3e\x80\x2f\x0c'
    b'\xa9\xfe\x64\x53\x69\x7a'
)


def legacy_normalise_pw(password: Optional[Union[str, bytes]]) -> bytes:
    """
    Turn a password into bytes for use with R2-R4 handlers.

    Only the first 32 characters of a string password matter, and each of
    them has to fit in a single byte.

    :raises InvalidPasswordCharacterError:
        if one of the first 32 characters is above U+00FF.
    """
    if password is None:
        return b''
    if isinstance(password, str):
        try:
            return password[:32].encode('latin-1')
        except UnicodeEncodeError as e:
            raise InvalidPasswordCharacterError(
                "Password contains one or more invalid characters."
            ) from e
    return bytes(password)


def pad_password(password: bytes) -> bytes:
    return (password + PASSWORD_PADDING)[:32]


def xor_key_rounds(key: bytes, data: bytes, rounds) -> bytes:
    # RC4 the data once per round, XORing every key byte with the round index
    for i in rounds:
        data = rc4_encrypt(bytes(b ^ i for b in key), data)
    return data


def compute_o_value_legacy_prep(password: bytes, rev: int, keylen: int):
    """
    Compute the RC4 key used to produce the ``/O`` entry
    (steps (a) to (d) of algorithm 3).

    :param password:
        The owner password, or the user password if there is no owner
        password.
    :param rev:
        The security handler revision.
    :param keylen:
        The key length in bytes.
    """
    md5_hash = md5(pad_password(password)).digest()  # lgtm
    if rev >= 3:
        for _ in range(50):
            md5_hash = md5(md5_hash).digest()
    return md5_hash[:keylen]


def compute_o_value_legacy(owner_pwd: bytes, user_pwd: bytes,
                           rev: int, keylen: int) -> bytes:
    """
    Compute the ``/O`` entry of the encryption dictionary (algorithm 3).
    """
    key = compute_o_value_legacy_prep(owner_pwd, rev, keylen)
    val = rc4_encrypt(key, pad_password(user_pwd))
    if rev >= 3:
        val = xor_key_rounds(key, val, range(1, 20))
    return val


def derive_legacy_file_key(password: bytes, rev: int, keylen: int,
                           owner_entry: bytes, p_entry: int,
                           id1_entry: bytes) -> bytes:
    """
    Compute the file encryption key (algorithm 2).

    :param password:
        The user password.
    :param rev:
        The security handler revision.
    :param keylen:
        The key length in bytes.
    :param owner_entry:
        The ``/O`` entry.
    :param p_entry:
        The ``/P`` entry, as a signed 32-bit integer.
    :param id1_entry:
        The first element of the file identifier.
    """
    m = md5(pad_password(password))  # lgtm
    m.update(owner_entry)
    # low-order byte first
    m.update(struct.pack('<i', p_entry))
    m.update(id1_entry)
    md5_hash = m.digest()
    if rev >= 3:
        for _ in range(50):
            md5_hash = md5(md5_hash[:keylen]).digest()
    return md5_hash[:keylen]


def compute_u_value_r2(password: bytes, owner_entry: bytes, p_entry: int,
                       id1_entry: bytes) -> Tuple[bytes, bytes]:
    """
    Compute the ``/U`` entry for revision 2 (algorithm 4).

    :return:
        The ``/U`` entry and the file encryption key.
    """
    key = derive_legacy_file_key(
        password, 2, 5, owner_entry, p_entry, id1_entry
    )
    return rc4_encrypt(key, PASSWORD_PADDING), key


def compute_u_value_r34(password: bytes, rev: int, keylen: int,
                        owner_entry: bytes, p_entry: int,
                        id1_entry: bytes) -> Tuple[bytes, bytes]:
    """
    Compute the ``/U`` entry for revisions 3 and 4 (algorithm 5).

    :return:
        The ``/U`` entry and the file encryption key.
    """
    key = derive_legacy_file_key(
        password, rev, keylen, owner_entry, p_entry, id1_entry
    )
    md5_hash = md5(PASSWORD_PADDING + id1_entry).digest()
    val = xor_key_rounds(key, md5_hash, range(0, 20))
    # the remaining 16 bytes are arbitrary, null bytes are the usual choice
    return val + (b'\x00' * 16), key


def legacy_derive_object_key(shared_key: bytes, idnum: int, generation: int,
                             use_aes=False) -> bytes:
    """
    Function that does the key derivation for PDF's legacy security handlers.

    :param shared_key:
        Global file encryption key.
    :param idnum:
        ID of the object being written.
    :param generation:
        Generation number of the object being written.
    :param use_aes:
        Boolean indicating whether the security handler uses RC4 or AES(-128).
    :return:
        The object key.
    """
    pack1 = struct.pack("<i", idnum)[:3]
    pack2 = struct.pack("<i", generation)[:2]
    key = shared_key + pack1 + pack2
    if use_aes:
        key += b'sAlT'
    md5_hash = md5(key).digest()
    return md5_hash[:min(16, len(shared_key) + 5)]

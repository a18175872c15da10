import itertools
import logging
import struct
from hashlib import md5, sha256
from io import BytesIO

import pytest
from cryptography.hazmat.decrepit.ciphers.algorithms import ARC4
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pdfvault.pdf_utils import generic, misc
from pdfvault.pdf_utils.config_utils import ConfigurationError
from pdfvault.pdf_utils.crypt import (
    STD_CF,
    AESCryptFilter,
    AuthStatus,
    InvalidPasswordCharacterError,
    PdfKeyNotAvailableError,
    RC4CryptFilter,
    SecurityHandlerVersion,
    SecurityOptions,
    StandardPermissions,
    StandardSecurityHandler,
    StandardSecuritySettingsRevision,
    UnsupportedAlgorithmError,
    UserPermissions,
    encode_permissions,
)
from pdfvault.pdf_utils.crypt._legacy import (
    PASSWORD_PADDING,
    legacy_derive_object_key,
)
from pdfvault.pdf_utils.crypt._util import as_signed
from pdfvault.pdf_utils.crypt.standard import (
    build_crypt_filter,
    generate_file_id,
    select_algorithm,
)
from pdfvault.pdf_utils.graph import PdfHeader, PdfObjectGraph

V = SecurityHandlerVersion
R = StandardSecuritySettingsRevision

FILE_ID = bytes(range(16))

ALL_VERSIONS = ['1.3', '1.4', '1.6', '1.7', '1.7ext3']


def _rc4(key, data):
    encryptor = Cipher(ARC4(key), mode=None).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def _counting_random_bytes():
    counter = itertools.count()

    def _random_bytes(n):
        return bytes(next(counter) % 256 for _ in range(n))

    return _random_bytes


def _graph(version_string):
    graph = PdfObjectGraph.create()
    graph.header = PdfHeader.from_version_string(version_string)
    return graph


def _handler(version_string, owner='ownersecret', user='usersecret',
             perms=None, **kwargs):
    options = SecurityOptions(
        owner_password=owner, user_password=user,
        permissions=perms or UserPermissions(printing=True, copying=True)
    )
    kwargs.setdefault('file_id', FILE_ID)
    return _graph(version_string).set_security(options, **kwargs)


@pytest.mark.parametrize('version_string,expected', [
    ('1.0', (V.RC4_40, R.RC4_BASIC, 40)),
    ('1.3', (V.RC4_40, R.RC4_BASIC, 40)),
    ('1.4', (V.RC4_LONGER_KEYS, R.RC4_EXTENDED, 128)),
    ('1.5', (V.RC4_LONGER_KEYS, R.RC4_EXTENDED, 128)),
    ('1.6', (V.RC4_OR_AES128, R.RC4_OR_AES128, 128)),
    ('1.7', (V.RC4_OR_AES128, R.RC4_OR_AES128, 128)),
    ('1.7ext3', (V.AES256, R.AES256, 256)),
    ('2.0', (V.RC4_40, R.RC4_BASIC, 40)),
])
def test_select_algorithm(version_string, expected):
    assert select_algorithm(version_string) == expected


@pytest.mark.parametrize('version_string,keylen,filter_cls', [
    ('1.3', 5, RC4CryptFilter),
    ('1.4', 16, RC4CryptFilter),
    ('1.7', 16, AESCryptFilter),
    ('1.7ext3', 32, AESCryptFilter),
])
def test_handler_setup(version_string, keylen, filter_cls):
    sh = _handler(version_string)
    assert sh.keylen == keylen
    assert len(sh.file_key) == keylen
    assert isinstance(sh.crypt_filter, filter_cls)


def test_encryption_dict_v1():
    sh = _handler('1.3')
    enc = sh.as_pdf_object()
    assert list(enc.keys()) == ['/Filter', '/V', '/R', '/O', '/U', '/P']
    assert enc['/Filter'] == '/Standard'
    assert enc['/V'] == 1
    assert enc['/R'] == 2
    assert len(enc['/O']) == len(enc['/U']) == 32


def test_encryption_dict_v2():
    sh = _handler('1.5')
    enc = sh.as_pdf_object()
    assert list(enc.keys()) == [
        '/Filter', '/V', '/Length', '/R', '/O', '/U', '/P'
    ]
    assert enc['/V'] == 2
    assert enc['/Length'] == 128
    assert enc['/R'] == 3


def test_encryption_dict_v4():
    sh = _handler('1.6')
    enc = sh.as_pdf_object()
    assert list(enc.keys()) == [
        '/Filter', '/V', '/Length', '/CF', '/StmF', '/StrF', '/R', '/O',
        '/U', '/P'
    ]
    assert enc['/V'] == 4
    assert enc['/R'] == 4
    assert enc['/Length'] == 128
    assert enc['/StmF'] == enc['/StrF'] == STD_CF
    std_cf = enc['/CF'][STD_CF]
    assert std_cf['/CFM'] == '/AESV2'
    assert std_cf['/AuthEvent'] == '/DocOpen'
    assert std_cf['/Length'] == 16


def test_encryption_dict_v5():
    sh = _handler('1.7ext3')
    enc = sh.as_pdf_object()
    assert list(enc.keys()) == [
        '/Filter', '/V', '/Length', '/CF', '/StmF', '/StrF', '/R', '/O',
        '/OE', '/U', '/UE', '/P', '/Perms'
    ]
    assert enc['/V'] == 5
    assert enc['/R'] == 5
    assert enc['/Length'] == 256
    std_cf = enc['/CF'][STD_CF]
    assert std_cf['/CFM'] == '/AESV3'
    assert std_cf['/Length'] == 32
    assert len(enc['/O']) == len(enc['/U']) == 48
    assert len(enc['/OE']) == len(enc['/UE']) == 32
    assert len(enc['/Perms']) == 16


def test_r2_known_answer():
    sh = _handler('1.3', owner='owner', user='user',
                  perms=UserPermissions(printing=True))
    padded_owner = (b'owner' + PASSWORD_PADDING)[:32]
    padded_user = (b'user' + PASSWORD_PADDING)[:32]
    expected_o = _rc4(md5(padded_owner).digest()[:5], padded_user)
    assert sh.odata == expected_o

    expected_p = -60
    assert sh.perms == expected_p
    expected_key = md5(
        padded_user + expected_o + struct.pack('<i', expected_p) + FILE_ID
    ).digest()[:5]
    assert sh.file_key == expected_key
    assert sh.udata == _rc4(expected_key, PASSWORD_PADDING)


@pytest.mark.parametrize('version_string', ['1.4', '1.7'])
def test_r34_u_entry(version_string):
    sh = _handler(version_string)
    value = md5(PASSWORD_PADDING + FILE_ID).digest()
    for i in range(20):
        value = _rc4(bytes(b ^ i for b in sh.file_key), value)
    assert sh.udata[:16] == value
    assert sh.udata[16:] == bytes(16)


def test_r5_entries():
    sh = _handler('1.7ext3', random_bytes=_counting_random_bytes())
    # the file key is drawn first
    assert sh.file_key == bytes(range(32))

    u_hash, u_val_salt, u_key_salt = \
        sh.udata[:32], sh.udata[32:40], sh.udata[40:48]
    assert u_val_salt == bytes(range(32, 40))
    assert u_key_salt == bytes(range(40, 48))
    assert u_hash == sha256(b'usersecret' + u_val_salt).digest()

    o_hash, o_val_salt = sh.odata[:32], sh.odata[32:40]
    assert o_hash == sha256(b'ownersecret' + o_val_salt + sh.udata).digest()

    interm_key = sha256(b'usersecret' + u_key_salt).digest()
    decryptor = Cipher(
        algorithms.AES(interm_key), modes.CBC(bytes(16))
    ).decryptor()
    assert decryptor.update(sh.ueseed) + decryptor.finalize() == sh.file_key

    decryptor = Cipher(algorithms.AES(sh.file_key), modes.ECB()).decryptor()
    perms = decryptor.update(sh.encrypted_perms) + decryptor.finalize()
    assert struct.unpack('<i', perms[:4])[0] == sh.perms
    assert perms[4:8] == b'\xff' * 4
    assert perms[8:12] == b'Tadb'


@pytest.mark.parametrize('version_string', ALL_VERSIONS)
@pytest.mark.parametrize('password,expected_status', [
    ('ownersecret', AuthStatus.OWNER),
    ('usersecret', AuthStatus.USER),
    ('wrongsecret', AuthStatus.FAILED),
    ('', AuthStatus.FAILED),
])
def test_authenticate(version_string, password, expected_status):
    sh = _handler(version_string)
    result = sh.authenticate(password)
    assert result.status == expected_status
    if expected_status == AuthStatus.USER:
        assert result.permission_flags == sh.perms
    else:
        assert result.permission_flags is None


@pytest.mark.parametrize('version_string', ALL_VERSIONS)
def test_owner_password_defaults_to_user_password(version_string):
    sh = _handler(version_string, owner=None, user='usersecret')
    assert sh.authenticate('usersecret').status == AuthStatus.OWNER
    assert sh.authenticate('ownersecret').status == AuthStatus.FAILED


@pytest.mark.parametrize('version_string', ALL_VERSIONS)
def test_empty_user_password(version_string):
    sh = _handler(version_string, owner='ownersecret', user='')
    assert sh.authenticate('').status == AuthStatus.USER
    assert sh.authenticate('ownersecret').status == AuthStatus.OWNER


@pytest.mark.parametrize('owner,user', [(None, None), ('', ''), (None, '')])
def test_no_password(owner, user):
    graph = _graph('1.7')
    options = SecurityOptions(owner_password=owner, user_password=user)
    with pytest.raises(ConfigurationError):
        graph.set_security(options)
    assert graph.security_handler is None


@pytest.mark.parametrize('version_string', ['1.3', '1.4', '1.7'])
def test_legacy_password_charset(version_string):
    with pytest.raises(InvalidPasswordCharacterError):
        _handler(version_string, owner='гесло')


def test_legacy_password_latin1():
    sh = _handler('1.7', owner='s\xe9same', user='caf\xe9')
    assert sh.authenticate('s\xe9same').status == AuthStatus.OWNER
    assert sh.authenticate('caf\xe9').status == AuthStatus.USER


def test_legacy_password_truncated():
    long_pw = 'x' * 32
    sh = _handler('1.4', owner='ownersecret', user=long_pw)
    assert sh.authenticate(long_pw + 'ignored').status == AuthStatus.USER


def test_r5_unicode_password():
    sh = _handler('1.7ext3', owner='гесло', user='€ uro')
    assert sh.authenticate('гесло').status == AuthStatus.OWNER
    assert sh.authenticate('€ uro').status == AuthStatus.USER


def test_r5_password_is_utf8_encoded():
    sh = _handler('1.7ext3', user='€ uro')
    u_hash, u_val_salt = sh.udata[:32], sh.udata[32:40]
    assert u_hash == sha256('€ uro'.encode('utf-8') + u_val_salt).digest()
    # the low-byte encoding of the same password does not match
    assert sh.authenticate(b'\xac uro').status == AuthStatus.FAILED

    long_pw = 'é' * 100
    sh = _handler('1.7ext3', user=long_pw)
    u_hash, u_val_salt = sh.udata[:32], sh.udata[32:40]
    truncated = long_pw.encode('utf-8')[:127]
    assert u_hash == sha256(truncated + u_val_salt).digest()
    assert sh.authenticate(truncated).status == AuthStatus.USER


def test_r5_perms_tampering():
    sh = _handler('1.7ext3')
    sh.perms = -4
    with pytest.raises(PdfKeyNotAvailableError):
        sh.authenticate('usersecret')
    assert sh.authenticate('nope').status == AuthStatus.FAILED


def test_legacy_tampered_o_entry():
    sh = _handler('1.7')
    sh.odata = bytes(32)
    assert sh.authenticate('ownersecret').status == AuthStatus.FAILED


@pytest.mark.parametrize('perms,revision,expected', [
    (UserPermissions(), 2, -64),
    (UserPermissions(), 3, -3904),
    (None, 4, -3904),
    (UserPermissions(printing=True, copying=True), 2, -44),
    (UserPermissions(printing='lowResolution'), 3, -3900),
    (UserPermissions(printing='highResolution', modifying=True), 4, -1844),
    # R2 has no high resolution flag, nor any of the R3 flags
    (UserPermissions(printing='highResolution', filling_forms=True,
                     content_accessibility=True, document_assembly=True),
     2, -60),
    (UserPermissions(filling_forms=True, content_accessibility=True,
                     document_assembly=True), 3, -3904 + 256 + 512 + 1024),
    (UserPermissions(
        printing='highResolution', modifying=True, copying=True,
        annotating=True, filling_forms=True, content_accessibility=True,
        document_assembly=True
    ), 5, -4),
])
def test_encode_permissions(perms, revision, expected):
    assert encode_permissions(perms, revision) == expected
    assert encode_permissions(perms, R(revision)) == expected


@pytest.mark.parametrize('printing', ['sometimes', 1, 0, None])
def test_invalid_printing(printing):
    with pytest.raises(ConfigurationError):
        UserPermissions(printing=printing)


def test_permissions_flags_in_handler():
    perms = UserPermissions(printing='highResolution', modifying=True)
    sh = _handler('1.7', perms=perms)
    assert sh.perms == -1844
    assert sh.as_pdf_object()['/P'] == -1844


def test_object_key_derivation():
    key = bytes(range(5))
    expected = md5(key + b'\x56\x34\x12' + b'\x89\x07').digest()[:10]
    assert legacy_derive_object_key(key, 0x123456, 0x0789) == expected

    key = bytes(range(16))
    expected = md5(key + b'\x0a\x00\x00\x00\x00' + b'sAlT').digest()
    assert legacy_derive_object_key(key, 10, 0, use_aes=True) == expected


def test_aes256_object_key():
    sh = _handler('1.7ext3')
    cf = sh.crypt_filter
    assert cf.derive_object_key(1, 0) == cf.derive_object_key(12, 3) \
        == sh.file_key


@pytest.mark.parametrize('version_string', ALL_VERSIONS)
def test_encrypt_decrypt(version_string):
    sh = _handler(version_string)
    payload = b'Hello world, this is a secret message.'
    encrypted = sh.get_encrypt_fn(3)(payload)
    assert encrypted != payload
    assert sh.get_decrypt_fn(3)(encrypted) == payload
    # RC4 keys are object-specific
    if version_string in ('1.3', '1.4'):
        assert sh.get_decrypt_fn(4)(encrypted) != payload


@pytest.mark.parametrize('version_string', ['1.7', '1.7ext3'])
def test_aes_fresh_iv(version_string):
    sh = _handler(version_string)
    encrypt = sh.get_encrypt_fn(1)
    payload = b'same data'
    ct1 = encrypt(payload)
    ct2 = encrypt(payload)
    assert ct1[:16] != ct2[:16]
    assert ct1 != ct2
    decrypt = sh.get_decrypt_fn(1)
    assert decrypt(ct1) == decrypt(ct2) == payload


def test_aes_injected_iv():
    sh = _handler('1.7', random_bytes=lambda n: b'\x01' * n)
    ct = sh.get_encrypt_fn(1)(b'data')
    assert ct[:16] == b'\x01' * 16
    # IV + a single padded block
    assert len(ct) == 32


def test_encrypted_string_output():
    sh = _handler('1.7')
    out = BytesIO()
    generic.TextStringObject('secret').write_to_stream(
        out, sh.get_encrypt_fn(2)
    )
    output = out.getvalue()
    assert output.startswith(b'<') and output.endswith(b'>')
    assert b'secret' not in output
    ct = bytes.fromhex(output[1:-1].decode('ascii'))
    assert sh.get_decrypt_fn(2)(ct) == b'secret'


def test_encrypt_registers_dictionary():
    sh = _handler('1.7')
    graph = sh.graph
    assert sh.encrypt_ref is None
    sh.encrypt()
    ref = sh.encrypt_ref
    assert graph.trailer_info.encrypt == ref
    assert graph.lookup(ref)['/Filter'] == '/Standard'
    file_id = graph.trailer_info.id
    assert list(file_id) == [FILE_ID, FILE_ID]
    with pytest.raises(misc.PdfWriteError):
        sh.encrypt()


def test_generate_file_id():
    file_id = generate_file_id()
    assert isinstance(file_id, bytes)
    assert len(file_id) == 16


def test_default_file_id():
    graph = _graph('1.7')
    sh = graph.set_security(SecurityOptions(user_password='abc'))
    assert len(sh.file_id) == 16
    assert sh.authenticate('abc').status == AuthStatus.OWNER


def test_unsupported_algorithm():
    with pytest.raises(UnsupportedAlgorithmError):
        build_crypt_filter(V.OTHER, bytes(16))


def test_aes_filter_bad_key():
    with pytest.raises(NotImplementedError):
        AESCryptFilter(bytes(24))


def test_version_from_number():
    assert V.from_number(4) == V.RC4_OR_AES128
    assert V.from_number(3) == V.OTHER
    assert R.from_number(6) == R.OTHER
    assert isinstance(V.OTHER.as_pdf_object(), generic.NullObject)


def test_rc4_warning(caplog):
    with caplog.at_level(logging.WARNING):
        _handler('1.4')
    assert any('RC4' in r.getMessage() for r in caplog.records)


def test_no_rc4_warning_for_aes(caplog):
    with caplog.at_level(logging.WARNING):
        _handler('1.7')
    assert not any(r.levelno >= logging.WARNING for r in caplog.records)


@pytest.mark.parametrize('revision,odata,udata', [
    (R.RC4_EXTENDED, bytes(31), bytes(32)),
    (R.RC4_OR_AES128, bytes(32), bytes(48)),
    (R.AES256, bytes(32), bytes(32)),
])
def test_handler_entry_lengths(revision, odata, udata):
    version = V.AES256 if revision == R.AES256 else V.RC4_LONGER_KEYS
    with pytest.raises(misc.PdfError):
        StandardSecurityHandler(
            _graph('1.7'), version=version, revision=revision, keylen=16,
            perms=-4, odata=odata, udata=udata, file_id=FILE_ID,
            file_key=bytes(16)
        )


def test_handler_r5_requires_seeds():
    with pytest.raises(misc.PdfError):
        StandardSecurityHandler(
            _graph('1.7ext3'), version=V.AES256, revision=R.AES256,
            keylen=32, perms=-4, odata=bytes(48), udata=bytes(48),
            file_id=FILE_ID, file_key=bytes(32), oeseed=bytes(32)
        )


def test_permission_flags_encode():
    perms = UserPermissions(printing='highResolution', copying=True)
    flags = perms.as_flags()
    assert encode_permissions(perms, 4) == flags.as_sint32()
    assert flags.as_uint32() == 0xFFFFF0C0 | 4 | 16 | 2048
    # at revision 2, only the low flags survive and bits 9-12 are set
    assert encode_permissions(perms, 2) == as_signed(0xFFFFFFC0 | 4 | 16)
    assert StandardPermissions.ALLOW_HIGH_QUALITY_PRINTING in flags
    assert StandardPermissions.ALLOW_MODIFICATION_GENERIC not in flags


def test_legacy_entries_reproducible():
    sh1 = _handler('1.7')
    sh2 = _handler('1.7')
    assert sh1.odata == sh2.odata
    assert sh1.udata == sh2.udata
    assert sh1.file_key == sh2.file_key


def test_owner_entry_recovers_user_password():
    sh = _handler('1.7')
    padded_owner = (b'ownersecret' + PASSWORD_PADDING)[:32]
    round_key = md5(padded_owner).digest()
    for _ in range(50):
        round_key = md5(round_key).digest()
    round_key = round_key[:16]
    value = sh.odata
    for i in range(19, -1, -1):
        value = _rc4(bytes(b ^ i for b in round_key), value)
    assert value == (b'usersecret' + PASSWORD_PADDING)[:32]


def test_user_password_only_v4():
    graph = _graph('1.7')
    sh = graph.set_security(SecurityOptions(user_password='foo'))
    enc = sh.as_pdf_object()
    assert enc['/V'] == 4
    assert enc['/R'] == 4
    assert enc['/Length'] == 128
    assert enc['/CF']['/StdCF']['/CFM'] == '/AESV2'

"""
Implementation of PDF object types and other generic functionality.

Every object type knows how to render itself to an output stream.
Strings and streams optionally take an encryption function that is applied
to their payload before it is written, which is how the security handler's
per-object closures end up in the serialised output.
"""
import binascii
import codecs
import decimal
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Tuple, Union

from .misc import (
    PdfStreamError,
    PdfWriteError,
    Singleton,
    is_regular_character,
)

__all__ = [
    'Dereferenceable',
    'Reference',
    'PdfObject',
    'IndirectObject',
    'NullObject',
    'BooleanObject',
    'FloatObject',
    'NumberObject',
    'ByteStringObject',
    'TextStringObject',
    'NameObject',
    'ArrayObject',
    'DictionaryObject',
    'StreamObject',
    'EncryptFn',
    'ABSENT',
    'pdf_name',
]

logger = logging.getLogger(__name__)

EncryptFn = Callable[[bytes], bytes]
"""
Transformation applied to string and stream payloads of a single indirect
object while it is being written.
"""


class _Absent(metaclass=Singleton):
    """
    Marker for dictionary entries that should be left out entirely, as
    opposed to being set to ``null``.
    """

    def __repr__(self):
        return 'ABSENT'

    def __bool__(self):
        return False


ABSENT = _Absent()


class Dereferenceable:
    """
    Represents an opaque reference to a PDF object associated with
    a PDF handler.
    """

    def get_object(self) -> 'PdfObject':
        """
        Retrieve the PDF object backing this dereferenceable.

        :return: A :class:`.PdfObject`.
        """
        raise NotImplementedError

    def get_pdf_handler(self):
        """
        Return the PDF handler associated with this dereferenceable.

        :return: a :class:`~.rw_common.PdfHandler`.
        """
        raise NotImplementedError


@dataclass(frozen=True)
class Reference(Dereferenceable):
    """
    A reference to an object with a certain ID and generation number, with
    a PDF handler attached to it.

    .. warning::
       The handler is ignored when hashing or comparing references, so it is
       the API user's responsibility to not mix up references originating
       from unrelated object graphs.
    """

    idnum: int
    """
    The object's ID.
    """

    generation: int = 0
    """
    The object's generation number (usually `0`)
    """

    pdf: object = field(repr=False, hash=False, compare=False, default=None)
    """
    The PDF handler associated with this reference, an instance of
    :class:`~.rw_common.PdfHandler`.
    """

    def get_object(self) -> 'PdfObject':
        if self.pdf is None:
            return NullObject()
        from .rw_common import PdfHandler

        assert isinstance(self.pdf, PdfHandler)
        return self.pdf.get_object(self).get_object()

    def get_pdf_handler(self):
        return self.pdf


class PdfObject:
    """Superclass for all PDF objects."""

    def get_object(self):
        """Resolves indirect references.

        :return: `self`, unless an instance of :class:`.IndirectObject`.
        """
        return self

    def write_to_stream(self, stream, encrypt_fn: Optional[EncryptFn] = None):
        """
        Abstract method to render this object to an output stream.

        :param stream:
            An output stream.
        :param encrypt_fn:
            Encryption function for the indirect object being written,
            or ``None`` if the output is not encrypted.
        """
        raise NotImplementedError


class NullObject(PdfObject):
    """
    PDF `null` object.

    All instances are treated as equal and falsy.
    """

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(b"null")

    def __eq__(self, other):
        return self is other or isinstance(other, NullObject)

    def __hash__(self):
        return hash(None)

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NullObject()'


class BooleanObject(PdfObject):
    """PDF boolean value."""

    def __init__(self, value):
        self.value = bool(value)

    def write_to_stream(self, stream, encrypt_fn=None):
        if self.value:
            stream.write(b"true")
        else:
            stream.write(b"false")

    def __bool__(self):
        return self.value

    def __eq__(self, other):
        return isinstance(other, (BooleanObject, bool)) and bool(self) == bool(
            other
        )

    def __hash__(self):
        return hash(self.value)

    def __str__(self):
        return str(bool(self))

    def __repr__(self):
        return str(self)


class ArrayObject(list, PdfObject):
    """
    PDF array object. This class extends from Python's list class,
    and supports its interface.

    Entries are not dereferenced on access; use
    :meth:`~.graph.PdfObjectGraph.lookup` for that.
    """

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(b"[")
        for data in self:
            stream.write(b" ")
            data.write_to_stream(stream, encrypt_fn)
        stream.write(b" ]")


class IndirectObject(PdfObject, Dereferenceable):
    """
    Thin wrapper around a :class:`.Reference`, implementing both the
    :class:`.Dereferenceable` and :class:`.PdfObject` interfaces.

    This is the form in which references appear inside other objects.
    It never owns the object it points to.
    """

    def __init__(self, idnum, generation, pdf):
        self.reference = Reference(idnum, generation, pdf)

    def get_object(self):
        """
        :return: The PDF object this reference points to.
        """
        obj = self.reference.get_object()
        return obj.get_object() if isinstance(obj, IndirectObject) else obj

    def get_pdf_handler(self):
        return self.reference.get_pdf_handler()

    @property
    def idnum(self) -> int:
        """
        :return: the object ID of this reference.
        """
        return self.reference.idnum

    @property
    def generation(self):
        """
        :return: the generation number of this reference.
        """
        return self.reference.generation

    def __repr__(self):
        return "IndirectObject(%r, %r)" % (self.idnum, self.generation)

    def __hash__(self):
        return hash((self.idnum, self.generation))

    def __eq__(self, other):
        return (
            other is not None
            and isinstance(other, IndirectObject)
            and self.reference == other.reference
        )

    def __ne__(self, other):
        return not self.__eq__(other)

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(b"%d %d R" % (self.idnum, self.generation))


class FloatObject(decimal.Decimal, PdfObject):
    """
    PDF Float object.

    Internally, these are treated as decimals (and therefore actually
    fixed-point objects, to be precise).
    """

    # noinspection PyArgumentList,PyTypeChecker
    def __new__(cls, value="0", context=None):
        try:
            return decimal.Decimal.__new__(cls, str(value), context)
        except (ValueError, decimal.DecimalException):
            return decimal.Decimal.__new__(cls, str(value))

    def __repr__(self):
        if self == self.to_integral():
            return str(self.quantize(decimal.Decimal(1)))
        else:
            return str(self)

    def as_numeric(self):
        """
        :return: a Python ``float`` value for this object.
        """
        return float(self)

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(repr(self).encode('ascii'))


class NumberObject(int, PdfObject):
    """
    PDF number object. This is the PDF type for integer values.
    """

    # noinspection PyArgumentList
    def __new__(cls, value):
        return int.__new__(cls, int(value))

    def as_numeric(self):
        """
        :return: a Python ``int`` value for this object.
        """
        return int(self)

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(repr(self).encode('ascii'))

    def __repr__(self):
        return int.__repr__(self)


class ByteStringObject(bytes, PdfObject):
    """PDF bytestring class, always written in hexadecimal notation."""

    original_bytes = property(lambda self: bytes(self))
    """
    For compatibility with :attr:`.TextStringObject.original_bytes`
    """

    def write_to_stream(self, stream, encrypt_fn=None):
        bytearr: bytes = self
        if encrypt_fn is not None:
            bytearr = encrypt_fn(bytearr)
        stream.write(b"<")
        stream.write(binascii.hexlify(bytearr))
        stream.write(b">")


class TextStringObject(str, PdfObject):
    """
    PDF text string object, written as a literal string.

    Strings that fit in 7-bit ASCII are written as-is, anything else is
    encoded as UTF-16BE with a byte order mark.
    """

    @property
    def original_bytes(self) -> bytes:
        """
        The bytes that represent this string in the output file
        (before encryption).
        """
        try:
            return self.encode('ascii')
        except UnicodeEncodeError:
            return codecs.BOM_UTF16_BE + self.encode('utf-16be')

    def write_to_stream(self, stream, encrypt_fn=None):
        encoded = self.original_bytes
        if encrypt_fn is not None:
            ByteStringObject(encrypt_fn(encoded)).write_to_stream(stream)
            return
        stream.write(b"(")
        for c in encoded:
            c_ = bytes([c])
            if not c_.isalnum() and c != 0x20:
                stream.write(b"\\%03o" % c)
            else:
                stream.write(c_)
        stream.write(b")")


class NameObject(str, PdfObject):
    """
    PDF name object. These are valid Python strings, but names and strings
    are treated differently in the PDF specification, so proper care is
    required.

    Name values include their leading ``/``.
    """

    def write_to_stream(self, stream, encrypt_fn=None):
        byte_iter = iter(self.encode('utf8'))
        if not next(byte_iter, None) == 0x2F:
            raise PdfWriteError(
                f"Could not serialise name object {repr(self)}, "
                f"must start with /"
            )
        stream.write(b'/')
        for cur_byte in byte_iter:
            if (
                cur_byte == 0x23
                or not (0x21 <= cur_byte <= 0x7E)
                or not is_regular_character(cur_byte)
            ):
                stream.write('#{:02X}'.format(cur_byte).encode('ascii'))
            else:
                stream.write(bytes((cur_byte,)))

    def decode_text(self) -> str:
        """
        :return: The name without its leading ``/``.
        """
        return self[1:]


pdf_name = NameObject


def _normalise_key(key):
    if not isinstance(key, NameObject):
        if isinstance(key, str):
            return NameObject(key)
        else:
            raise ValueError("key must be PdfName")
    return key


class DictionaryObject(dict, PdfObject):
    """
    A PDF dictionary object.

    Keys in a PDF dictionary are PDF names, and values are PDF objects.

    When accessing a key using the standard :meth:`__getitem__` syntax,
    :class:`.IndirectObject` references will be resolved.
    Use :meth:`raw_get` to retrieve values as they are stored.
    """

    def __init__(self, dict_data=None):
        if dict_data is not None:
            super().__init__(
                {_normalise_key(k): v for k, v in dict_data.items()}
            )
        else:
            super().__init__()

    def raw_get(self, key: Union[NameObject, str]):
        """
        Get a value from a dictionary without dereferencing.

        :param key:
            Key to look up in the dictionary.
        :return:
            A :class:`.PdfObject`.
        """
        return dict.__getitem__(self, key)

    def __setitem__(self, key, value):
        key = _normalise_key(key)
        if not isinstance(value, PdfObject):
            raise ValueError("value must be PdfObject")
        return dict.__setitem__(self, key, value)

    def setdefault(self, key, value=None):
        key = _normalise_key(key)
        if not isinstance(value, PdfObject):
            raise ValueError("value must be PdfObject")
        return dict.setdefault(self, key, value)

    def __getitem__(self, key):
        return dict.__getitem__(self, key).get_object()

    def write_to_stream(self, stream, encrypt_fn=None):
        stream.write(b"<<\n")
        for key, value in list(self.items()):
            key.write_to_stream(stream)
            stream.write(b" ")
            value.write_to_stream(stream, encrypt_fn)
            stream.write(b"\n")
        stream.write(b">>")


class StreamObject(DictionaryObject):
    """
    PDF stream object.

    Essentially, a PDF stream is a dictionary object with a binary blob of
    data attached. This data can be encoded by various filters (see
    :mod:`.filters` for the ones that are supported).

    .. note::
        The ``/Length`` entry is managed by the stream itself, and is
        computed when the stream is written. A ``/Length`` value set by the
        caller is left in place afterwards, but never written out.

    :param dict_data:
        The dictionary data for this stream object.
    :param stream_data:
        The (unencoded) stream data.
    :param encoded_data:
        The encoded stream data.

        .. warning::
            If both `stream_data` and `encoded_data` are provided, the caller
            is responsible for making sure that both are compatible given the
            currently relevant filter configuration.
    """

    def __init__(
        self,
        dict_data: Optional[dict] = None,
        stream_data: Optional[bytes] = None,
        encoded_data: Optional[bytes] = None,
    ):
        super().__init__(dict_data)
        self._data = stream_data
        self._encoded_data = encoded_data

    def _filters(self) -> Iterator[Tuple[str, Optional[dict]]]:
        try:
            filter_arr = self['/Filter']
        except KeyError:
            return
        try:
            params = self['/DecodeParms']
        except KeyError:
            params = None
        if isinstance(filter_arr, NameObject):
            yield filter_arr, params
            return
        if params is None:
            params = [None] * len(filter_arr)
        for filter_name, filter_params in zip(filter_arr, params):
            yield filter_name.get_object(), (
                filter_params.get_object() if filter_params else None
            )

    def _stream_decoders(self):
        from .filters import get_generic_decoder

        for filter_name, params in self._filters():
            yield get_generic_decoder(filter_name), params

    @property
    def data(self) -> bytes:
        """
        Return the decoded stream data as bytes.
        If the stream hasn't been decoded yet, it will be decoded on-the-fly.

        :raises .misc.PdfStreamError:
            If the stream could not be decoded.
        """
        if self._data is None:
            data = self._encoded_data
            if data is None:
                raise PdfStreamError("No data available.")
            for filter_cls, decode_params in self._stream_decoders():
                data = filter_cls.decode(data, decode_params)
            if isinstance(data, memoryview):
                data = data.tobytes()
            self._data = data
        return self._data

    @property
    def encoded_data(self) -> bytes:
        """
        Return the encoded stream data as bytes.
        If the stream hasn't been encoded yet, it will be encoded on-the-fly.

        :raises .misc.PdfStreamError:
            If the stream could not be encoded.
        """
        if self._encoded_data is None:
            self._encoded_data = self._encode(self.data)
        return self._encoded_data

    def _encode(self, data: bytes) -> bytes:
        decoders = tuple(self._stream_decoders())
        for filter_cls, decode_params in reversed(decoders):
            data = filter_cls.encode(data, decode_params)
        return data

    def write_to_stream(self, stream, encrypt_fn=None):
        data = self.encoded_data
        if encrypt_fn is not None:
            data = encrypt_fn(data)
        length_key = NameObject("/Length")
        caller_length = self.get(length_key, ABSENT)
        dict.__setitem__(self, length_key, NumberObject(len(data)))
        # write the dictionary
        try:
            super().write_to_stream(stream, encrypt_fn)
        finally:
            # writing must leave the dictionary as it was
            if caller_length is ABSENT:
                del self[length_key]
            else:
                dict.__setitem__(self, length_key, caller_length)
        stream.write(b"\nstream\n")
        stream.write(data)
        stream.write(b"\nendstream")

"""
The indirect object graph: the in-memory store that owns every indirect
object of a document, hands out references, and converts between native
Python literals and PDF objects.
"""

import logging
import random
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from . import generic
from .content import (
    POP_GRAPHICS_STATE,
    PUSH_GRAPHICS_STATE,
    ContentStream,
    PdfOperator,
)
from .crypt.permissions import SecurityOptions
from .crypt.standard import StandardSecurityHandler
from .filters import FlateDecode
from .misc import PdfWriteError, UnexpectedObjectTypeError
from .rw_common import PdfHandler

__all__ = ['PdfHeader', 'TrailerInfo', 'PdfObjectGraph']

logger = logging.getLogger(__name__)

RefLike = Union[generic.Reference, generic.IndirectObject]

VERSION_STRING_REGEX = re.compile(r'(\d+)\.(\d+)(?:ext(\d+))?')


@dataclass(frozen=True)
class PdfHeader:
    """
    Declared format version of a document.
    """

    major: int = 1
    minor: int = 7

    extension_level: Optional[int] = None
    """
    Adobe extension level (e.g. ``3`` for ``1.7ext3``), if any.
    """

    @classmethod
    def from_version_string(cls, version_string: str) -> 'PdfHeader':
        """
        Parse a version string like ``'1.4'`` or ``'1.7ext3'``.

        :raises ValueError:
            if the string is not a valid version string.
        """
        m = VERSION_STRING_REGEX.fullmatch(version_string)
        if m is None:
            raise ValueError(f"Invalid PDF version string '{version_string}'")
        major, minor, ext = m.groups()
        return cls(int(major), int(minor),
                   int(ext) if ext is not None else None)

    @property
    def version_string(self) -> str:
        result = f'{self.major}.{self.minor}'
        if self.extension_level is not None:
            result += f'ext{self.extension_level}'
        return result

    def render(self) -> bytes:
        # extension levels live in the catalog, not in the header line
        out = f'%PDF-{self.major}.{self.minor}\n'.encode('ascii')
        # some binary characters to make sure the file is flagged
        # as binary (see § 7.5.2 in ISO 32000-1)
        return out + b'%\xc2\xa5\xc2\xb1\xc3\xab\n'


@dataclass
class TrailerInfo:
    """
    Trailer slots managed by the graph. All of them are optional.
    """

    root: Optional[generic.PdfObject] = None
    info: Optional[generic.PdfObject] = None
    id: Optional[generic.PdfObject] = None
    encrypt: Optional[generic.PdfObject] = None


def _as_name(key: str) -> generic.NameObject:
    if isinstance(key, generic.NameObject):
        return key
    return generic.NameObject(key if key.startswith('/') else '/' + key)


def _strip_name_keys(dict_literal: Optional[dict]) -> dict:
    return {
        _as_name(k).decode_text(): v for k, v in (dict_literal or {}).items()
    }


class PdfObjectGraph(PdfHandler):
    """
    Store of indirect objects, keyed by :class:`~.generic.Reference`.

    Object numbers are handed out in increasing order and never reused,
    not even after :meth:`delete`.

    .. note::
        A graph is not thread-safe; concurrent mutation must be serialised
        by the caller.
    """

    def __init__(self):
        self.largest_object_number = 0
        self.header = PdfHeader()
        self.trailer_info = TrailerInfo()
        self._objects = {}
        # cosmetic randomness only, never use this for anything security-
        # related
        self.rng = random.Random(1)
        self.security_handler: Optional[StandardSecurityHandler] = None
        self._security_params = None
        self._security_handler_saved = False
        self._push_gs_ref: Optional[generic.IndirectObject] = None
        self._pop_gs_ref: Optional[generic.IndirectObject] = None

    @classmethod
    def create(cls) -> 'PdfObjectGraph':
        """
        Create an empty graph declaring PDF 1.7, with an empty trailer.
        """
        return cls()

    def _key(self, ref: RefLike) -> generic.Reference:
        if isinstance(ref, generic.IndirectObject):
            ref = ref.reference
        return generic.Reference(ref.idnum, ref.generation)

    def _ref(self, key: generic.Reference) -> generic.IndirectObject:
        return generic.IndirectObject(key.idnum, key.generation, self)

    def assign(self, ref: RefLike, obj: generic.PdfObject):
        """
        Store an object under a reference, replacing whatever was there.

        :param ref:
            A :class:`~.generic.Reference` or
            :class:`~.generic.IndirectObject`.
        :param obj:
            The object to store.
        :raises PdfWriteError:
            if the object number is not strictly positive.
        """
        key = self._key(ref)
        if key.idnum <= 0:
            raise PdfWriteError(
                f"Object numbers must be positive, not {key.idnum}."
            )
        if not isinstance(obj, generic.PdfObject):
            raise PdfWriteError(
                f"Only PDF objects can be stored in the graph, "
                f"not {type(obj).__name__}."
            )
        self._objects[key] = obj
        if key.idnum > self.largest_object_number:
            self.largest_object_number = key.idnum

    def next_ref(self) -> generic.IndirectObject:
        """
        Allocate a fresh reference with generation 0.
        """
        self.largest_object_number += 1
        return generic.IndirectObject(self.largest_object_number, 0, self)

    def register(self, obj: generic.PdfObject) -> generic.IndirectObject:
        """
        Add an object under a fresh reference.

        :return:
            The new reference.
        """
        ref = self.next_ref()
        self.assign(ref, obj)
        return ref

    def delete(self, ref: RefLike) -> bool:
        """
        Remove the object stored under a reference.

        :return:
            ``True`` if there was one.
        """
        try:
            del self._objects[self._key(ref)]
        except KeyError:
            return False
        logger.debug("Deleted object %d %d", ref.idnum, ref.generation)
        return True

    def get_object(self, ref: generic.Reference):
        try:
            return self._objects[self._key(ref)]
        except KeyError:
            return generic.NullObject()

    @property
    def root_ref(self) -> generic.Reference:
        root = self.trailer_info.root
        if not isinstance(root, generic.IndirectObject):
            raise PdfWriteError("No document catalog has been registered.")
        return root.reference

    def _resolve(self, ref):
        if isinstance(ref, (generic.IndirectObject, generic.Reference)):
            return self._objects.get(self._key(ref))
        return ref

    @staticmethod
    def _check_type(result, types):
        for t in types:
            if isinstance(result, t):
                return result
        raise UnexpectedObjectTypeError(types, result)

    def lookup(self, ref, *types: type):
        """
        Resolve a reference.

        Anything other than a reference is passed through as-is.

        :param ref:
            A reference or a direct object.
        :param types:
            Acceptable types for the result. Pass
            :class:`~.generic.NullObject` to accept ``null``.
        :return:
            The resolved object, or ``None`` if the reference is unassigned
            and no types were given.
        :raises UnexpectedObjectTypeError:
            if types were given and the result is not an instance of any
            of them.
        """
        result = self._resolve(ref)
        if not types:
            return result
        return self._check_type(result, types)

    def lookup_maybe(self, ref, *types: type):
        """
        Like :meth:`lookup`, but return ``None`` for unassigned references
        and ``null`` values. The latter are returned as-is if
        :class:`~.generic.NullObject` is among the requested types.
        """
        preserve_null = generic.NullObject in types
        result = self._resolve(ref)
        if result is None or \
                (isinstance(result, generic.NullObject) and not preserve_null):
            return None
        if not types:
            return result
        return self._check_type(result, types)

    def get_object_ref(self, obj: generic.PdfObject) \
            -> Optional[generic.IndirectObject]:
        """
        Find the reference under which an object is stored, by identity.

        .. note::
            This is a linear scan.
        """
        for key, value in self._objects.items():
            if value is obj:
                return self._ref(key)
        return None

    def enumerate_indirect_objects(self) \
            -> List[Tuple[generic.IndirectObject, generic.PdfObject]]:
        """
        :return:
            All (reference, object) pairs, in ascending object number order.
        """
        keys = sorted(self._objects.keys(),
                      key=lambda k: (k.idnum, k.generation))
        return [(self._ref(k), self._objects[k]) for k in keys]

    def obj(self, literal) -> generic.PdfObject:
        """
        Convert a native literal into a PDF object, recursively.

        * ``None`` becomes ``null``;
        * a string becomes a name (the leading ``/`` is optional);
        * booleans, integers and floats become the corresponding PDF types;
        * ``bytes`` become a hexadecimal string;
        * lists and tuples become arrays, with :data:`~.generic.ABSENT`
          entries turned into ``null``;
        * dictionaries become dictionaries, skipping entries whose value
          is :data:`~.generic.ABSENT`;
        * PDF objects are passed through unchanged.
        """
        if isinstance(literal, generic.PdfObject):
            return literal
        elif literal is None:
            return generic.NullObject()
        elif isinstance(literal, str):
            return _as_name(literal)
        elif isinstance(literal, bool):
            return generic.BooleanObject(literal)
        elif isinstance(literal, int):
            return generic.NumberObject(literal)
        elif isinstance(literal, float):
            return generic.FloatObject(literal)
        elif isinstance(literal, (bytes, bytearray)):
            return generic.ByteStringObject(literal)
        elif isinstance(literal, (list, tuple)):
            return generic.ArrayObject(
                generic.NullObject() if x is generic.ABSENT else self.obj(x)
                for x in literal
            )
        elif isinstance(literal, dict):
            return generic.DictionaryObject({
                _as_name(k): self.obj(v) for k, v in literal.items()
                if v is not generic.ABSENT
            })
        raise TypeError(
            f"Cannot convert {type(literal).__name__} to a PDF object."
        )

    def get_literal(self, obj, *, deep=True, literal_ref=False,
                    literal_stream_dict=False, literal_string=False):
        """
        Convert a PDF object back into a native literal.

        Without any of the ``literal_*`` flags, ``obj(get_literal(x)) == x``.
        References, streams and strings are left alone unless the
        corresponding flag is set.

        :param obj:
            The object to convert.
        :param deep:
            Recurse into arrays and dictionaries.
        :param literal_ref:
            Convert references to their object number.
        :param literal_stream_dict:
            Convert streams to the literal form of their dictionary.
        :param literal_string:
            Convert text and hex strings to ``str``.
        """
        kwargs = dict(
            deep=deep, literal_ref=literal_ref,
            literal_stream_dict=literal_stream_dict,
            literal_string=literal_string
        )
        if isinstance(obj, generic.StreamObject):
            if not literal_stream_dict:
                return obj
            # strip the stream part and convert the dictionary
            return self.get_literal(generic.DictionaryObject(obj), **kwargs)
        elif isinstance(obj, generic.ArrayObject):
            return [self.get_literal(x, **kwargs) for x in obj] if deep \
                else list(obj)
        elif isinstance(obj, generic.DictionaryObject):
            return {
                k.decode_text():
                    self.get_literal(v, **kwargs) if deep else v
                for k, v in obj.items()
            }
        elif isinstance(obj, generic.NameObject):
            return obj.decode_text()
        elif isinstance(obj, generic.NullObject):
            return None
        elif isinstance(obj, generic.BooleanObject):
            return bool(obj)
        elif isinstance(obj, (generic.NumberObject, generic.FloatObject)):
            return obj.as_numeric()
        elif isinstance(obj, generic.IndirectObject) and literal_ref:
            return obj.idnum
        elif isinstance(obj, generic.TextStringObject) and literal_string:
            return str(obj)
        elif isinstance(obj, generic.ByteStringObject) and literal_string:
            return bytes(obj).decode('latin-1')
        return obj

    def stream(self, contents: Union[str, bytes],
               dict_literal: Optional[dict] = None) -> generic.StreamObject:
        """
        Create a stream with the given (already encoded) contents.

        :param contents:
            The stream contents. Strings are encoded byte-per-character.
        :param dict_literal:
            Literal for the stream dictionary.
        """
        if isinstance(contents, str):
            contents = contents.encode('latin-1')
        return generic.StreamObject(
            self.obj(dict_literal or {}), encoded_data=bytes(contents)
        )

    def flate_stream(self, contents: Union[str, bytes],
                     dict_literal: Optional[dict] = None) \
            -> generic.StreamObject:
        """
        Create a stream with deflate-compressed contents and
        ``/Filter /FlateDecode`` set.
        """
        if isinstance(contents, str):
            contents = contents.encode('latin-1')
        return self.stream(
            FlateDecode().encode(contents),
            {**_strip_name_keys(dict_literal), 'Filter': 'FlateDecode'}
        )

    def content_stream(self, operators: Iterable[PdfOperator],
                       dict_literal: Optional[dict] = None) -> ContentStream:
        return ContentStream(self.obj(dict_literal or {}), operators)

    def form_xobject(self, operators: Iterable[PdfOperator],
                     dict_literal: Optional[dict] = None) -> ContentStream:
        """
        Create a form XObject. ``/BBox`` and ``/Matrix`` default to an empty
        box and the identity matrix; ``/Type`` and ``/Subtype`` are always
        ``/XObject`` and ``/Form``.
        """
        return self.content_stream(operators, {
            'BBox': [0, 0, 0, 0],
            'Matrix': [1, 0, 0, 1, 0, 0],
            **_strip_name_keys(dict_literal),
            'Type': 'XObject',
            'Subtype': 'Form',
        })

    def get_push_graphics_state_content_stream(self) \
            -> generic.IndirectObject:
        """
        Reference to a content stream holding a single ``q`` operator.
        The stream is registered on first use and shared afterwards.
        """
        if self._push_gs_ref is None:
            stream = ContentStream(
                self.obj({}), [PdfOperator.of(PUSH_GRAPHICS_STATE)]
            )
            self._push_gs_ref = self.register(stream)
        return self._push_gs_ref

    def get_pop_graphics_state_content_stream(self) \
            -> generic.IndirectObject:
        """
        Reference to a content stream holding a single ``Q`` operator.
        The stream is registered on first use and shared afterwards.
        """
        if self._pop_gs_ref is None:
            stream = ContentStream(
                self.obj({}), [PdfOperator.of(POP_GRAPHICS_STATE)]
            )
            self._pop_gs_ref = self.register(stream)
        return self._pop_gs_ref

    def add_random_suffix(self, prefix: str, suffix_length: int = 4) -> str:
        """
        Append a pseudorandom numeric suffix to a name.

        The suffixes come from a generator seeded with a constant, so the
        same sequence of calls always produces the same names.
        """
        return f'{prefix}-{int(self.rng.random() * 10 ** suffix_length)}'

    def set_security(self, options: SecurityOptions, **kwargs) \
            -> StandardSecurityHandler:
        """
        Attach a standard security handler to this graph.

        :param options:
            A :class:`~.crypt.permissions.SecurityOptions` object.
        :param kwargs:
            Passed to :meth:`.StandardSecurityHandler.create`.
        :return:
            The new handler.
        """
        self.security_handler = sh = StandardSecurityHandler.create(
            self, options, **kwargs
        )
        self._security_params = (options, kwargs)
        self._security_handler_saved = False
        return sh

    def security_handler_for_save(self) -> Optional[StandardSecurityHandler]:
        """
        Hand out the security handler for the next save, with its encryption
        dictionary registered.

        A handler serves one save only. The first save after
        :meth:`set_security` uses the handler it returned; every later save
        derives a new one from the same options, so revision 5 salts and key
        material are never shared between two files. The new encryption
        dictionary replaces the previous one under the same reference.

        :return:
            The handler, or ``None`` if the graph is not encrypted.
        """
        sh = self.security_handler
        if sh is None:
            return None
        if self._security_handler_saved:
            options, kwargs = self._security_params
            previous_ref = sh.encrypt_ref
            self.security_handler = sh = StandardSecurityHandler.create(
                self, options, **kwargs
            )
            sh.encrypt(previous_ref)
            logger.debug(
                "Derived a new security handler for this save, replacing "
                "the encryption dictionary in object %d", previous_ref.idnum
            )
        elif sh.encrypt_ref is None:
            sh.encrypt()
        self._security_handler_saved = True
        return sh

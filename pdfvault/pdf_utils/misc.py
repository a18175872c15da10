"""
Utility functions for the PDF library.

Generally, all of these constitute internal API, except for the exception
classes.
"""

from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

__all__ = [
    'PdfError', 'PdfWriteError', 'PdfStreamError',
    'UnexpectedObjectTypeError',
    'OrderedEnum', 'VersionEnum', 'Singleton',
    'get_and_apply', 'is_regular_character',
    'PDF_WHITESPACE', 'PDF_DELIMITERS',
]


PDF_WHITESPACE = b' \n\r\t\f\x00'
PDF_DELIMITERS = b'()<>[]{}/%'


def is_regular_character(byte_value: int):
    return byte_value not in PDF_WHITESPACE and byte_value not in PDF_DELIMITERS


class PdfError(Exception):

    def __init__(self, msg: str, *args):
        self.msg = msg
        super().__init__(msg, *args)


class PdfWriteError(PdfError):
    pass


class PdfStreamError(PdfError):
    pass


class UnexpectedObjectTypeError(PdfError):
    """
    Raised when an object lookup resolves to a value that is not of any of
    the requested types.
    """

    def __init__(self, expected: Iterable[type], actual,
                 msg: Optional[str] = None):
        self.expected: Tuple[type, ...] = tuple(expected)
        self.actual = actual
        if msg is None:
            names = ' or '.join(t.__name__ for t in self.expected)
            actual_name = (
                'nothing' if actual is None else type(actual).__name__
            )
            msg = f"Expected instance of {names}, but got {actual_name}."
        super().__init__(msg)


class OrderedEnum(Enum):
    """
    Ordered enum (from the Python documentation)
    """

    def __ge__(self, other):
        if self.__class__ is other.__class__:
            return self.value >= other.value
        raise NotImplementedError

    def __gt__(self, other):
        if self.__class__ is other.__class__:
            return self.value > other.value
        raise NotImplementedError

    def __le__(self, other):
        if self.__class__ is other.__class__:
            return self.value <= other.value
        raise NotImplementedError

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            return self.value < other.value
        raise NotImplementedError


class VersionEnum(Enum):
    """
    Ordered enum with support for ``None``, for future-proofing version-based
    enums. In such enums, the value ``None`` can be used as a stand-in for
    "any future version".
    """

    def __ge__(self, other):
        if self.__class__ is other.__class__:
            val = self.value
            other_val = other.value
            if val is None:
                return True
            elif other_val is None:
                return False
            else:
                return val >= other_val
        raise NotImplementedError

    def __gt__(self, other):
        if self.__class__ is other.__class__:
            val = self.value
            other_val = other.value
            if val is None:
                return other_val is not None
            elif other_val is None:
                return False
            else:
                return val > other_val
        raise NotImplementedError

    def __le__(self, other):
        if self.__class__ is other.__class__:
            val = self.value
            other_val = other.value
            if other_val is None:
                return True
            elif val is None:
                return False
            else:
                return val <= other_val
        raise NotImplementedError

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            val = self.value
            other_val = other.value
            if other_val is None:
                return val is not None
            elif val is None:
                return False
            else:
                return val < other_val
        raise NotImplementedError


def get_and_apply(dictionary: dict, key, function: Callable, *, default=None):
    try:
        value = dictionary[key]
    except KeyError:
        return default
    return function(value)


class Singleton(type):

    def __new__(mcs, name, bases, dct):
        cls = type.__new__(mcs, name, bases, dct)
        instance = type.__call__(cls)
        cls.__new__ = lambda _: instance
        return cls

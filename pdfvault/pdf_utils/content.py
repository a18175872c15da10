"""
Content stream operators, and streams that render them on demand.
"""
from io import BytesIO
from typing import Iterable, List, Optional

from .generic import PdfObject, StreamObject

__all__ = ['PdfOperator', 'ContentStream', 'PUSH_GRAPHICS_STATE',
           'POP_GRAPHICS_STATE']

PUSH_GRAPHICS_STATE = 'q'
POP_GRAPHICS_STATE = 'Q'


class PdfOperator:
    """
    A single content stream operator together with its operands.

    :param name:
        The operator, e.g. ``q`` or ``re``.
    :param operands:
        The operands, as PDF objects.
    """

    def __init__(self, name: str, operands: Iterable[PdfObject] = ()):
        self.name = name
        self.operands = list(operands)

    @classmethod
    def of(cls, name: str, *operands: PdfObject) -> 'PdfOperator':
        return cls(name, operands)

    def render(self) -> bytes:
        out = BytesIO()
        for operand in self.operands:
            operand.write_to_stream(out)
            out.write(b' ')
        out.write(self.name.encode('ascii'))
        return out.getvalue()

    def __repr__(self):
        return f"PdfOperator({self.name!r}, {self.operands!r})"


class ContentStream(StreamObject):
    """
    Stream whose data is a sequence of :class:`.PdfOperator` instances.

    The operators are rendered every time the stream data is requested,
    so operators can be appended until the stream is written.
    The ``/Length`` entry is computed at write time like for any other
    stream.
    """

    def __init__(self, dict_data: Optional[dict] = None,
                 operators: Iterable[PdfOperator] = ()):
        super().__init__(dict_data)
        self.operators: List[PdfOperator] = list(operators)

    def push_operators(self, *operators: PdfOperator):
        self.operators.extend(operators)

    @property
    def data(self) -> bytes:
        return b''.join(op.render() + b'\n' for op in self.operators)

    @property
    def encoded_data(self) -> bytes:
        return self._encode(self.data)

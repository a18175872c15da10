"""
Serialisation of a :class:`~.graph.PdfObjectGraph` into a complete PDF file
with a classic cross-reference table.
"""

import logging
from io import BytesIO
from typing import Dict, Iterator, List, Optional, Tuple

from . import generic
from .crypt.standard import StandardSecurityHandler
from .generic import pdf_name
from .graph import PdfObjectGraph
from .misc import PdfWriteError

__all__ = ['PdfGraphWriter', 'serialize', 'write_xref_table']

logger = logging.getLogger(__name__)

PositionDict = Dict[Tuple[int, int], int]


def _contiguous_xref_chunks(position_dict: PositionDict) \
        -> Iterator[Tuple[int, List[Tuple[int, int]]]]:
    """
    Helper method to divide the XRef table into contiguous chunks.
    """
    current_chunk: List[Tuple[int, int]] = []
    first_idnum = previous_idnum = None

    # iterate over keys in object ID order
    for ix in sorted(position_dict.keys(), key=lambda t: t[1]):
        generation, idnum = ix
        # the idnum jumped, so yield the current chunk and start a new one
        if current_chunk and idnum != previous_idnum + 1:
            yield first_idnum, current_chunk
            current_chunk = []
        if not current_chunk:
            first_idnum = idnum
        current_chunk.append((position_dict[ix], generation))
        previous_idnum = idnum

    if current_chunk:
        yield first_idnum, current_chunk


def write_xref_table(stream, position_dict: PositionDict) -> int:
    """
    Write a cross-reference table for the objects in ``position_dict``.

    :param stream:
        Output stream.
    :param position_dict:
        Mapping of ``(generation, idnum)`` to byte offsets.
    :return:
        The position of the ``xref`` keyword.
    """
    xref_location = stream.tell()
    stream.write(b'xref\n')
    subsections = _contiguous_xref_chunks(position_dict)

    def write_header(idnum, length):
        stream.write(b'%d %d\n' % (idnum, length))

    def write_subsection(chunk):
        for position, generation in chunk:
            stream.write(b"%010d %05d n \n" % (position, generation))

    null_obj_ref = b'0000000000 65535 f \n'
    try:
        first_idnum, subsection = next(subsections)
    except StopIteration:
        # only the head of the free list
        stream.write(b'0 1\n')
        stream.write(null_obj_ref)
        return xref_location
    if first_idnum == 1:
        # integrate the null object into the first subsection
        write_header(0, len(subsection) + 1)
        stream.write(null_obj_ref)
    else:
        stream.write(b'0 1\n')
        stream.write(null_obj_ref)
        write_header(first_idnum, len(subsection))
    write_subsection(subsection)
    for first_idnum, subsection in subsections:
        write_header(first_idnum, len(subsection))
        write_subsection(subsection)
    return xref_location


class PdfGraphWriter:
    """
    Writes out the objects in a graph, encrypting strings and streams if
    a security handler is attached to it.

    :param graph:
        The graph to serialise.
    """

    def __init__(self, graph: PdfObjectGraph):
        self.graph = graph

    def _write_objects(self, stream, object_position_dict: PositionDict,
                       sh: Optional[StandardSecurityHandler]):
        encrypt_ref = sh.encrypt_ref if sh is not None else None
        for ref, obj in self.graph.enumerate_indirect_objects():
            idnum, generation = ref.idnum, ref.generation
            object_position_dict[(generation, idnum)] = stream.tell()
            stream.write(b'%d %d obj\n' % (idnum, generation))
            encrypt_fn = None
            # the encryption dictionary itself is never encrypted
            if sh is not None and ref != encrypt_ref:
                encrypt_fn = sh.get_encrypt_fn(idnum, generation)
            obj.write_to_stream(stream, encrypt_fn)
            stream.write(b'\nendobj\n')

    def _populate_trailer(self, trailer: generic.DictionaryObject):
        trailer_info = self.graph.trailer_info
        trailer[pdf_name('/Size')] = generic.NumberObject(
            self.graph.largest_object_number + 1
        )
        if trailer_info.root is not None:
            trailer[pdf_name('/Root')] = trailer_info.root
        if trailer_info.info is not None:
            trailer[pdf_name('/Info')] = trailer_info.info
        if trailer_info.id is not None:
            trailer[pdf_name('/ID')] = trailer_info.id
        if trailer_info.encrypt is not None:
            trailer[pdf_name('/Encrypt')] = trailer_info.encrypt

    def write(self, stream):
        """
        Write the graph to a stream.

        :param stream:
            A writable output stream.
        :raises PdfWriteError:
            if the graph cannot be serialised.
        """
        sh = self.graph.security_handler_for_save()
        object_positions: PositionDict = {}
        stream.write(self.graph.header.render())
        self._write_objects(stream, object_positions, sh)
        xref_location = write_xref_table(stream, object_positions)
        trailer = generic.DictionaryObject()
        self._populate_trailer(trailer)
        stream.write(b'trailer\n')
        trailer.write_to_stream(stream)
        # write xref table pointer and EOF
        xref_pointer_string = '\nstartxref\n%s\n' % xref_location
        stream.write(xref_pointer_string.encode('ascii') + b'%%EOF\n')
        logger.debug(
            "Wrote %d indirect objects, xref table at offset %d",
            len(object_positions), xref_location
        )


def serialize(graph: PdfObjectGraph) -> bytes:
    """
    Serialise a graph to bytes.

    :param graph:
        The graph to serialise.
    :return:
        The PDF file, as bytes.
    """
    out = BytesIO()
    try:
        PdfGraphWriter(graph).write(out)
    except UnicodeEncodeError as e:
        raise PdfWriteError("Failed to serialise object graph") from e
    return out.getvalue()

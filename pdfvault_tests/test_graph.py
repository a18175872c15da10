import zlib
from io import BytesIO

import pytest

from pdfvault.pdf_utils import generic, misc
from pdfvault.pdf_utils.content import PdfOperator
from pdfvault.pdf_utils.generic import pdf_name
from pdfvault.pdf_utils.graph import PdfHeader, PdfObjectGraph


def test_register_starts_at_one():
    graph = PdfObjectGraph.create()
    ref = graph.register(generic.NumberObject(7))
    assert ref.idnum == 1
    assert ref.generation == 0
    assert graph.largest_object_number == 1
    assert graph.lookup(ref) == 7


def test_assign_bumps_largest_object_number():
    graph = PdfObjectGraph.create()
    graph.assign(generic.Reference(10), generic.NullObject())
    assert graph.largest_object_number == 10
    assert graph.next_ref().idnum == 11
    assert graph.register(generic.BooleanObject(True)).idnum == 12

    # assigning below the maximum leaves it alone
    graph.assign(generic.Reference(3), generic.NumberObject(3))
    assert graph.largest_object_number == 12


@pytest.mark.parametrize('idnum', [0, -1])
def test_assign_nonpositive_idnum(idnum):
    graph = PdfObjectGraph.create()
    with pytest.raises(misc.PdfWriteError):
        graph.assign(generic.Reference(idnum), generic.NullObject())


def test_assign_requires_pdf_object():
    graph = PdfObjectGraph.create()
    with pytest.raises(misc.PdfWriteError):
        # noinspection PyTypeChecker
        graph.assign(generic.Reference(1), 5)


def test_assign_replaces():
    graph = PdfObjectGraph.create()
    ref = graph.register(generic.NumberObject(1))
    graph.assign(ref, generic.NumberObject(2))
    assert graph.lookup(ref) == 2
    assert len(graph.enumerate_indirect_objects()) == 1


def test_delete_does_not_reuse_numbers():
    graph = PdfObjectGraph.create()
    ref = graph.register(generic.NumberObject(1))
    assert graph.delete(ref)
    assert not graph.delete(ref)
    assert graph.lookup(ref) is None
    assert graph.register(generic.NumberObject(2)).idnum == 2


def test_enumerate_sorted():
    graph = PdfObjectGraph.create()
    graph.assign(generic.Reference(5), generic.NumberObject(5))
    graph.assign(generic.Reference(2), generic.NumberObject(2))
    graph.register(generic.NumberObject(6))
    graph.assign(generic.Reference(4), generic.NumberObject(4))
    result = graph.enumerate_indirect_objects()
    assert [ref.idnum for ref, _ in result] == [2, 4, 5, 6]
    assert [obj for _, obj in result] == [2, 4, 5, 6]
    assert all(isinstance(ref, generic.IndirectObject) for ref, _ in result)


def test_references_dereference_through_graph():
    graph = PdfObjectGraph.create()
    inner = graph.register(graph.obj({'Foo': 1}))
    outer = graph.register(graph.obj({'Inner': inner}))
    outer_dict = graph.lookup(outer)
    assert outer_dict.raw_get('/Inner') == inner
    assert outer_dict['/Inner']['/Foo'] == 1


def test_lookup_types():
    graph = PdfObjectGraph.create()
    ref = graph.register(graph.obj({'Type': 'Catalog'}))
    result = graph.lookup(ref, generic.DictionaryObject)
    assert result['/Type'] == '/Catalog'
    with pytest.raises(misc.UnexpectedObjectTypeError):
        graph.lookup(ref, generic.ArrayObject)
    # direct objects pass through
    assert graph.lookup(generic.NumberObject(3), generic.NumberObject) == 3


def test_lookup_unassigned():
    graph = PdfObjectGraph.create()
    assert graph.lookup(generic.Reference(4)) is None
    with pytest.raises(misc.UnexpectedObjectTypeError):
        graph.lookup(generic.Reference(4), generic.DictionaryObject)


def test_lookup_maybe():
    graph = PdfObjectGraph.create()
    null_ref = graph.register(generic.NullObject())
    dict_ref = graph.register(generic.DictionaryObject())
    assert graph.lookup_maybe(generic.Reference(9)) is None
    assert graph.lookup_maybe(generic.Reference(9), generic.ArrayObject) is None
    assert graph.lookup_maybe(null_ref) is None
    assert graph.lookup_maybe(null_ref, generic.NullObject) \
        == generic.NullObject()
    # an empty dictionary is not the same thing as a missing one
    assert graph.lookup_maybe(dict_ref) == {}
    with pytest.raises(misc.UnexpectedObjectTypeError):
        graph.lookup_maybe(dict_ref, generic.ArrayObject)


def test_get_object_ref():
    graph = PdfObjectGraph.create()
    obj = graph.obj([1, 2])
    ref = graph.register(obj)
    assert graph.get_object_ref(obj) == ref
    # identity, not equality
    assert graph.get_object_ref(graph.obj([1, 2])) is None


def test_root():
    graph = PdfObjectGraph.create()
    with pytest.raises(misc.PdfWriteError):
        graph.root_ref
    ref = graph.register(graph.obj({'Type': 'Catalog'}))
    graph.trailer_info.root = ref
    assert graph.root_ref == ref.reference
    assert graph.root['/Type'] == '/Catalog'


def test_obj_conversion():
    graph = PdfObjectGraph.create()
    result = graph.obj({
        'Type': 'Page', '/Count': 3, 'Scale': 1.5, 'Flag': False,
        'Kids': [None, 'Foo'], 'Blob': b'\x00\x01',
        'Missing': generic.ABSENT,
    })
    assert isinstance(result, generic.DictionaryObject)
    assert set(result.keys()) == {
        '/Type', '/Count', '/Scale', '/Flag', '/Kids', '/Blob'
    }
    assert isinstance(result['/Type'], generic.NameObject)
    assert result['/Type'] == '/Page'
    assert isinstance(result['/Count'], generic.NumberObject)
    assert isinstance(result['/Scale'], generic.FloatObject)
    assert isinstance(result['/Flag'], generic.BooleanObject)
    assert not result['/Flag']
    kids = result['/Kids']
    assert isinstance(kids[0], generic.NullObject)
    assert kids[1] == '/Foo'
    assert isinstance(result['/Blob'], generic.ByteStringObject)


def test_obj_absent_in_array():
    graph = PdfObjectGraph.create()
    result = graph.obj([1, generic.ABSENT, [generic.ABSENT]])
    assert len(result) == 3
    assert result[0] == 1
    assert isinstance(result[1], generic.NullObject)
    assert isinstance(result[2][0], generic.NullObject)
    out = BytesIO()
    result.write_to_stream(out)
    assert out.getvalue() == b'[ 1 null [ null ] ]'


def test_obj_passthrough():
    graph = PdfObjectGraph.create()
    s = generic.TextStringObject('hello')
    assert graph.obj(s) is s


def test_obj_unsupported():
    graph = PdfObjectGraph.create()
    with pytest.raises(TypeError):
        graph.obj(object())


def test_literal_round_trip():
    graph = PdfObjectGraph.create()
    ref = graph.register(generic.NullObject())
    original = graph.obj({
        'Type': 'Annot', 'Rect': [0, 0, 10.5, 20], 'F': 4, 'Open': True,
        'Parent': ref, 'Contents': generic.TextStringObject('note'),
        'Nested': {'A': None, 'B': b'\xff'},
    })
    literal = graph.get_literal(original)
    assert literal['Type'] == 'Annot'
    assert literal['Rect'] == [0, 0, 10.5, 20]
    assert literal['Open'] is True
    assert literal['Parent'] == ref
    assert literal['Nested']['A'] is None
    assert graph.obj(literal) == original


def test_literal_flags():
    graph = PdfObjectGraph.create()
    ref = graph.register(generic.NullObject())
    stream = graph.stream(b'abc', {'Subtype': 'XML'})
    original = graph.obj({
        'Parent': ref, 'Text': generic.TextStringObject('note'),
        'Hex': b'hi', 'Meta': stream,
    })
    literal = graph.get_literal(
        original, literal_ref=True, literal_string=True,
        literal_stream_dict=True
    )
    assert literal == {
        'Parent': ref.idnum, 'Text': 'note', 'Hex': 'hi',
        'Meta': {'Subtype': 'XML'},
    }
    assert graph.get_literal(stream) is stream


def test_literal_shallow():
    graph = PdfObjectGraph.create()
    arr = graph.obj([1, [2, 3]])
    shallow = graph.get_literal(arr, deep=False)
    assert shallow[0] == 1
    assert isinstance(shallow[1], generic.ArrayObject)


def test_stream():
    graph = PdfObjectGraph.create()
    stream = graph.stream('abc\xe9', {'Type': 'Metadata'})
    assert stream.encoded_data == b'abc\xe9'
    assert stream['/Type'] == '/Metadata'


def test_flate_stream():
    graph = PdfObjectGraph.create()
    payload = b'BT /F1 12 Tf (Hello) Tj ET' * 10
    stream = graph.flate_stream(payload, {'/Type': 'XObject'})
    assert stream['/Filter'] == '/FlateDecode'
    assert stream['/Type'] == '/XObject'
    assert zlib.decompress(stream.encoded_data) == payload
    assert stream.data == payload


def test_content_stream():
    graph = PdfObjectGraph.create()
    stream = graph.content_stream([PdfOperator.of('q')])
    stream.push_operators(
        PdfOperator.of('re', *(generic.NumberObject(x) for x in (0, 0, 5, 5))),
        PdfOperator.of('Q'),
    )
    assert stream.data == b'q\n0 0 5 5 re\nQ\n'
    assert stream.encoded_data == stream.data


def test_form_xobject_defaults():
    graph = PdfObjectGraph.create()
    xobj = graph.form_xobject([PdfOperator.of('n')])
    assert xobj['/Type'] == '/XObject'
    assert xobj['/Subtype'] == '/Form'
    assert list(xobj['/BBox']) == [0, 0, 0, 0]
    assert list(xobj['/Matrix']) == [1, 0, 0, 1, 0, 0]


def test_form_xobject_overrides():
    graph = PdfObjectGraph.create()
    xobj = graph.form_xobject(
        [], {'BBox': [0, 0, 100, 50], 'Subtype': 'Image', 'Group': 'G'}
    )
    assert list(xobj['/BBox']) == [0, 0, 100, 50]
    # type and subtype cannot be overridden
    assert xobj['/Subtype'] == '/Form'
    assert xobj['/Group'] == '/G'


def test_graphics_state_streams_memoised():
    graph = PdfObjectGraph.create()
    push = graph.get_push_graphics_state_content_stream()
    pop = graph.get_pop_graphics_state_content_stream()
    assert graph.get_push_graphics_state_content_stream() == push
    assert graph.get_pop_graphics_state_content_stream() == pop
    assert push != pop
    assert graph.largest_object_number == 2
    assert graph.lookup(push).data == b'q\n'
    assert graph.lookup(pop).data == b'Q\n'


def test_random_suffix_deterministic():
    graph1 = PdfObjectGraph.create()
    graph2 = PdfObjectGraph.create()
    names1 = [graph1.add_random_suffix('Image') for _ in range(5)]
    names2 = [graph2.add_random_suffix('Image') for _ in range(5)]
    assert names1 == names2
    assert len(set(names1)) > 1
    for name in names1:
        prefix, suffix = name.split('-')
        assert prefix == 'Image'
        assert suffix.isdigit()
        assert int(suffix) < 10 ** 4


def test_random_suffix_length():
    graph = PdfObjectGraph.create()
    name = graph.add_random_suffix('F', suffix_length=2)
    assert int(name.split('-')[1]) < 100


@pytest.mark.parametrize('version_string,expected', [
    ('1.4', PdfHeader(1, 4)),
    ('1.7', PdfHeader(1, 7)),
    ('1.7ext3', PdfHeader(1, 7, 3)),
    ('2.0', PdfHeader(2, 0)),
])
def test_header_version_string(version_string, expected):
    header = PdfHeader.from_version_string(version_string)
    assert header == expected
    assert header.version_string == version_string


@pytest.mark.parametrize('version_string', ['1', 'abc', '1.7ext', '1.7 '])
def test_header_bad_version_string(version_string):
    with pytest.raises(ValueError):
        PdfHeader.from_version_string(version_string)


def test_header_render():
    rendered = PdfHeader(1, 7, 3).render()
    assert rendered.startswith(b'%PDF-1.7\n%')
    # binary marker line
    assert all(b >= 128 for b in rendered.split(b'\n')[1][1:])


def test_name_escaping():
    out = BytesIO()
    pdf_name('/A B#C').write_to_stream(out)
    assert out.getvalue() == b'/A#20B#23C'


def test_push_graphics_state_single_object():
    graph = PdfObjectGraph.create()
    first = graph.get_push_graphics_state_content_stream()
    second = graph.get_push_graphics_state_content_stream()
    assert first == second
    assert len(graph.enumerate_indirect_objects()) == 1

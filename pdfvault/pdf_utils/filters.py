"""
Implementation of stream filters for PDF.

Only ``/FlateDecode`` is supported, which is the one filter that the object
graph applies to streams it creates.
"""
import zlib

from .misc import PdfStreamError, Singleton

__all__ = ['Decoder', 'FlateDecode', 'get_generic_decoder']


class Decoder:
    """
    General filter/decoder interface.
    """

    def decode(self, data: bytes, decode_params: dict) -> bytes:
        """
        Decode a stream.

        :param data:
            Data to decode.
        :param decode_params:
            Decoder parameters, sourced from the ``/DecodeParms`` entry
            associated with this filter.
        :return:
            Decoded data.
        """
        raise NotImplementedError

    def encode(self, data: bytes, decode_params: dict) -> bytes:
        """
        Encode a stream.

        :param data:
            Data to encode.
        :param decode_params:
            Encoder parameters, sourced from the ``/DecodeParms`` entry
            associated with this filter.
        :return:
            Encoded data.
        """
        raise NotImplementedError


class FlateDecode(Decoder, metaclass=Singleton):
    """
    Implementation of the ``/FlateDecode`` filter.

    .. warning::
        Predictors are not supported.
    """

    def decode(self, data: bytes, decode_params=None):
        predictor = 1
        if decode_params:
            try:
                predictor = decode_params.get("/Predictor", 1)
            except AttributeError:
                pass
        if predictor != 1:
            raise PdfStreamError(
                "Unsupported FlateDecode predictor %r" % predictor
            )
        try:
            return zlib.decompress(data)
        except zlib.error as e:
            raise PdfStreamError("Failed to inflate stream data") from e

    def encode(self, data, decode_params=None):
        return zlib.compress(data)


DECODERS = {
    '/FlateDecode': FlateDecode,
    '/Fl': FlateDecode,
}


def get_generic_decoder(name: str) -> Decoder:
    """
    Instantiate a specific stream filter decoder type by (PDF) name.

    The following names are recognised:

    * ``/FlateDecode`` or ``/Fl`` for the decoder implementing Flate
       compression.

    :param name:
        Name of the decoder to instantiate.
    :raises misc.PdfStreamError:
        if the filter is not supported.
    """

    try:
        cls = DECODERS[name]
    except KeyError:
        raise PdfStreamError(f"Stream filter '{name}' is not supported.")
    return cls()

"""Interface shared by everything that resolves indirect references."""

from . import generic

__all__ = ['PdfHandler']


class PdfHandler:
    """Abstract class providing a general interface for querying objects
    in PDF object stores."""

    def get_object(self, ref: generic.Reference):
        """
        Retrieve the object associated with the provided reference from
        this PDF handler.

        :param ref:
            An instance of :class:`.generic.Reference`.
        :return:
            A PDF object.
        """
        raise NotImplementedError

    @property
    def root_ref(self) -> generic.Reference:
        """
        :return: A reference to the document catalog of this PDF handler.
        """
        raise NotImplementedError

    @property
    def root(self) -> generic.DictionaryObject:
        """
        :return: The document catalog of this PDF handler.
        """
        root = self.root_ref.get_object()
        assert isinstance(root, generic.DictionaryObject)
        return root

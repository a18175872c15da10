"""
Document access permissions for the standard security handler.
"""
from dataclasses import dataclass, field
from enum import Flag
from typing import Optional, Union

from ..config_utils import ConfigurableMixin, ConfigurationError, process_choice
from ._util import as_signed

__all__ = [
    'PdfPermissions', 'StandardPermissions', 'UserPermissions',
    'SecurityOptions', 'encode_permissions',
    'PRINTING_CHOICES', 'R2_RESERVED_MASK', 'R3_RESERVED_MASK',
]

R2_RESERVED_MASK = 0xFFFFFFC0
R3_RESERVED_MASK = 0xFFFFF0C0

PRINTING_CHOICES = (False, True, 'lowResolution', 'highResolution')


class PdfPermissions(Flag):

    def as_uint32(self):
        raise NotImplementedError

    def as_sint32(self) -> int:
        return as_signed(self.as_uint32())


class StandardPermissions(PdfPermissions, Flag):
    # Not an IntFlag: PDF treats the flags as a 32-bit two's complement
    # integer, which IntFlag arithmetic does not model.

    ALLOW_PRINTING = 4
    ALLOW_MODIFICATION_GENERIC = 8
    ALLOW_CONTENT_EXTRACTION = 16
    ALLOW_ANNOTS_FORM_FILLING = 32
    ALLOW_FORM_FILLING = 256
    ALLOW_ASSISTIVE_TECHNOLOGY = 512
    ALLOW_REASSEMBLY = 1024
    ALLOW_HIGH_QUALITY_PRINTING = 2048

    def as_uint32(self):
        return sum(x.value for x in self.__class__ if x in self) \
            | R3_RESERVED_MASK


_R2_FLAGS = (
    StandardPermissions.ALLOW_PRINTING
    | StandardPermissions.ALLOW_MODIFICATION_GENERIC
    | StandardPermissions.ALLOW_CONTENT_EXTRACTION
    | StandardPermissions.ALLOW_ANNOTS_FORM_FILLING
)


@dataclass(frozen=True)
class UserPermissions(ConfigurableMixin):
    """
    Operations a user may perform on a document opened with the user
    password.

    Everything is denied by default.
    """

    printing: Union[bool, str] = False
    """
    ``False``, ``True``, ``'lowResolution'`` or ``'highResolution'``.
    Only ``'highResolution'`` grants high-quality printing, and only for
    revision 3 and up.
    """

    modifying: bool = False
    copying: bool = False
    annotating: bool = False

    filling_forms: bool = False
    """
    Revision 3 and up.
    """

    content_accessibility: bool = False
    """
    Revision 3 and up.
    """

    document_assembly: bool = False
    """
    Revision 3 and up.
    """

    def __post_init__(self):
        process_choice(self.printing, PRINTING_CHOICES, 'printing')

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        if 'printing' in config_dict:
            process_choice(
                config_dict['printing'], PRINTING_CHOICES, 'printing'
            )

    def as_flags(self) -> StandardPermissions:
        flags = StandardPermissions(0)
        if self.printing:
            flags |= StandardPermissions.ALLOW_PRINTING
        if self.printing == 'highResolution':
            flags |= StandardPermissions.ALLOW_HIGH_QUALITY_PRINTING
        if self.modifying:
            flags |= StandardPermissions.ALLOW_MODIFICATION_GENERIC
        if self.copying:
            flags |= StandardPermissions.ALLOW_CONTENT_EXTRACTION
        if self.annotating:
            flags |= StandardPermissions.ALLOW_ANNOTS_FORM_FILLING
        if self.filling_forms:
            flags |= StandardPermissions.ALLOW_FORM_FILLING
        if self.content_accessibility:
            flags |= StandardPermissions.ALLOW_ASSISTIVE_TECHNOLOGY
        if self.document_assembly:
            flags |= StandardPermissions.ALLOW_REASSEMBLY
        return flags


def encode_permissions(perms: Optional[UserPermissions], revision) -> int:
    """
    Encode user permissions as the ``/P`` value for a given revision.

    :param perms:
        The permissions to grant. ``None`` grants nothing.
    :param revision:
        The handler revision, as an integer or a
        :class:`~.api.StandardSecuritySettingsRevision`.
    :return:
        A signed 32-bit integer.
    """
    revision = getattr(revision, 'value', revision)
    flags = (perms or UserPermissions()).as_flags()
    if revision == 2:
        flags &= _R2_FLAGS
        # bits 9-12 are reserved at revision 2 as well
        return as_signed(flags.as_uint32() | R2_RESERVED_MASK)
    return flags.as_sint32()


@dataclass(frozen=True)
class SecurityOptions(ConfigurableMixin):
    """
    Password and permission input for the standard security handler.

    At least one password must be set; an empty string counts as unset.
    """

    owner_password: Optional[str] = None
    """
    Password that grants full access. Defaults to the user password.
    """

    user_password: Optional[str] = None
    """
    Password that grants access subject to :attr:`permissions`.
    """

    permissions: Optional[UserPermissions] = field(
        default_factory=UserPermissions
    )

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        if not (config_dict.get('owner_password')
                or config_dict.get('user_password')):
            raise ConfigurationError(
                "Either an owner password or a user password must be "
                "specified."
            )

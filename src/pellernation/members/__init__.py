"""Fan-club member records and registration."""

from pellernation.members.registration import ImageUpload, RegistrationForm, register_member
from pellernation.members.store import Member, MemberStore, NewMember

__all__ = [
    "ImageUpload",
    "Member",
    "MemberStore",
    "NewMember",
    "RegistrationForm",
    "register_member",
]

"""Table-name constants and column-value enums."""

from enum import Enum


class Table:
    """Database table names."""

    MEMBERS = "members"
    SCHEMA_MIGRATIONS = "schema_migrations"


class AllowedImageType(str, Enum):
    """Content types accepted for member profile images."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"

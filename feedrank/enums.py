"""
Closed vocabularies shared by the ranking core, the ORM layer and the API.

Values are the strings stored in the database and sent over the wire.
"""
import enum
from typing import Optional, Type, TypeVar

E = TypeVar("E", bound=enum.Enum)


class InteractionKind(str, enum.Enum):
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    SAVE = "save"
    VIEW = "view"


class ContentType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"


class Language(str, enum.Enum):
    NEPALI = "nepali"
    ENGLISH = "english"
    MIXED = "mixed"


class LanguagePreference(str, enum.Enum):
    NEPALI = "nepali"
    ENGLISH = "english"
    BOTH = "both"


class ContentKind(str, enum.Enum):
    POST = "post"
    REEL = "reel"


class FeedType(str, enum.Enum):
    FOLLOWING = "following"
    FYP = "fyp"
    EXPLORE = "explore"
    NEARBY = "nearby"
    TRENDING = "trending"


def coerce(enum_cls: Type[E], value) -> Optional[E]:
    """Map a raw stored value onto `enum_cls`; unknown or empty values become None."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None

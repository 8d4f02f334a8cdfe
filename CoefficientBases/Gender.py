from enum import Enum
from functools import lru_cache

from algo_config import GENDER_FACTOR_DEFAULT, GENDER_FACTOR_REDUCED
from algo_errors import InvalidInput


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non_binary"
    UNSPECIFIED = "unspecified"


# Accepted spellings from forms and host apps
_GENDER_ALIASES = {
    "male": Gender.MALE,
    "m": Gender.MALE,
    "man": Gender.MALE,
    "female": Gender.FEMALE,
    "f": Gender.FEMALE,
    "woman": Gender.FEMALE,
    "non_binary": Gender.NON_BINARY,
    "nonbinary": Gender.NON_BINARY,
    "nb": Gender.NON_BINARY,
    "unspecified": Gender.UNSPECIFIED,
    "other": Gender.UNSPECIFIED,
    "unknown": Gender.UNSPECIFIED,
    "": Gender.UNSPECIFIED,
}

_REDUCED = frozenset((Gender.FEMALE, Gender.NON_BINARY))


def parse_gender(value) -> Gender:
    """Normalize a gender label (enum, string or None) into Gender."""
    if value is None:
        return Gender.UNSPECIFIED
    if isinstance(value, Gender):
        return value
    if not isinstance(value, str):
        raise InvalidInput("gender must be a string.", field="gender")
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return _GENDER_ALIASES[key]
    except KeyError:
        raise InvalidInput(f"Unknown gender: {value!r}", field="gender") from None


@lru_cache(maxsize=None)
def get_gender_factor(gender) -> float:
    """0.98 for female or non-binary subjects, 1.00 otherwise."""
    if parse_gender(gender) in _REDUCED:
        return GENDER_FACTOR_REDUCED
    return GENDER_FACTOR_DEFAULT

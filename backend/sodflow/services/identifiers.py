"""
Record identifier value type.

Dataverse GUIDs reach us in several shapes: upper or lower case, with or
without braces, with stray whitespace from URL parameters. Every map key
and every equality check goes through RecordId so that
"{ABC-1}" and "abc-1" are the same record.
"""
from dataclasses import dataclass
from typing import Optional, Union

# Values that arrive from templated URLs when the source field was empty
_EMPTY_MARKERS = {"undefined", "null", "none"}


@dataclass(frozen=True)
class RecordId:
    """Canonical (lower case, brace-less, trimmed) identifier."""

    value: str

    @staticmethod
    def canonical(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        cleaned = str(raw).replace("{", "").replace("}", "").strip().lower()
        if cleaned in _EMPTY_MARKERS:
            return ""
        return cleaned

    @classmethod
    def normalize(cls, raw: Union["RecordId", str, None]) -> "RecordId":
        if isinstance(raw, RecordId):
            return raw
        return cls(cls.canonical(raw))

    def __bool__(self) -> bool:
        return bool(self.value)

    def __str__(self) -> str:
        return self.value


def same_record(a: Union[RecordId, str, None], b: Union[RecordId, str, None]) -> bool:
    """True when both identifiers are present and point at the same record."""
    left, right = RecordId.normalize(a), RecordId.normalize(b)
    return bool(left) and left == right

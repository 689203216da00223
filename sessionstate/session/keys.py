"""
Session Key Generator

Maps a session id to the Redis keys holding its record and write lock.

Data Model:
    Hash tag:  {<application>:<session_id>}
    Keys:
        - {tag}_Data        payload (string)
        - {tag}_Internal    metadata hash (session timeout)
        - {tag}_Write_Lock  lock identifier (string)

Every key carries the same ``{...}`` hash tag, so Redis Cluster places all
keys of one session in one slot and multi-key scripts can touch them together.
"""

from __future__ import annotations

from typing import Any, Tuple

from sessionstate.core import constants as C
from sessionstate.core.errors import ValidationError


def _validate_part(field: str, value: Any, allow_empty: bool) -> str:
    if not isinstance(value, str):
        raise ValidationError.invalid_field(field, value, "must be a string")
    if not value:
        if allow_empty:
            return value
        raise ValidationError.invalid_field(field, value, "must not be empty")
    if len(value) > C.MAX_SESSION_ID_LENGTH:
        raise ValidationError.invalid_field(
            field, value, f"longer than {C.MAX_SESSION_ID_LENGTH} characters"
        )
    if "{" in value or "}" in value:
        raise ValidationError.invalid_field(field, value, "must not contain braces")
    if any(ch.isspace() or not ch.isprintable() for ch in value):
        raise ValidationError.invalid_field(
            field, value, "must not contain whitespace or control characters"
        )
    return value


class KeyGenerator:
    """
    Deterministic, namespaced keys for one session.

    Pure value object: equal inputs give equal keys, no I/O.

    Raises:
        ValidationError: On a malformed session id or application name.
    """

    __slots__ = ("session_id", "application_name", "data_key", "internal_key", "lock_key")

    def __init__(self, session_id: str, application_name: str = C.DEFAULT_APPLICATION_NAME) -> None:
        self.session_id = _validate_part("session_id", session_id, allow_empty=False)
        self.application_name = _validate_part("application_name", application_name, allow_empty=True)
        if C.NAMESPACE_SEPARATOR in application_name:
            raise ValidationError.invalid_field(
                "application_name", application_name, f"must not contain {C.NAMESPACE_SEPARATOR!r}"
            )

        tag = f"{{{application_name}{C.NAMESPACE_SEPARATOR}{session_id}}}"
        self.data_key = tag + C.DATA_KEY_SUFFIX
        self.internal_key = tag + C.INTERNAL_KEY_SUFFIX
        self.lock_key = tag + C.LOCK_KEY_SUFFIX

    def all(self) -> Tuple[str, str, str]:
        """Keys in script KEYS order: data, internal, lock."""
        return (self.data_key, self.internal_key, self.lock_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyGenerator):
            return NotImplemented
        return self.all() == other.all()

    def __hash__(self) -> int:
        return hash(self.all())

    def __repr__(self) -> str:
        return f"KeyGenerator(session_id={self.session_id!r}, application_name={self.application_name!r})"


__all__ = ["KeyGenerator"]

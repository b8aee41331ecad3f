"""Authorization token codec.

A token is the string an adapter hands back in ``Outcome.reference`` and
later receives verbatim in capture/void/refund. Each adapter declares the
fields it packs as a :class:`TokenSchema`; every schema joins its fields
with a delimiter that no field may contain, and keeps empty segments for
missing optional fields so decoding stays positional.
"""

from collections import namedtuple
from typing import Iterable, NamedTuple, Optional, Tuple

from .exceptions import DecodeError, ValidationError


class TokenSchema:
    """Positional layout of one adapter's authorization token."""

    def __init__(
        self,
        name: str,
        fields: Iterable[str],
        delimiter: str = "|",
        optional: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.fields: Tuple[str, ...] = tuple(fields)
        self.delimiter = delimiter
        self.optional = frozenset(optional)

        if not self.fields:
            raise ValueError("a token schema needs at least one field")
        if not delimiter:
            raise ValueError("a token schema needs a delimiter")
        unknown = self.optional.difference(self.fields)
        if unknown:
            raise ValueError(f"optional fields not in schema: {sorted(unknown)}")

        self._record = namedtuple(f"{name.title().replace('_', '')}Token", self.fields)

    @property
    def arity(self) -> int:
        return len(self.fields)

    def encode(self, *values: Optional[object]) -> str:
        """Join ``values`` into a token.

        Raises:
            ValidationError: On a wrong number of values, a missing required
                value, or a value containing the delimiter
        """
        if len(values) != self.arity:
            raise ValidationError(
                f"{self.name} token takes {self.arity} fields, got {len(values)}"
            )

        segments = []
        for field, value in zip(self.fields, values):
            segment = "" if value is None else str(value)
            if not segment and field not in self.optional:
                raise ValidationError(f"{self.name} token field {field!r} is required")
            if self.delimiter in segment:
                raise ValidationError(
                    f"{self.name} token field {field!r} may not contain {self.delimiter!r}"
                )
            segments.append(segment)
        return self.delimiter.join(segments)

    def decode(self, token: object) -> NamedTuple:
        """Split a token back into its fields.

        Raises:
            DecodeError: If ``token`` is not a token produced by this schema
        """
        if not isinstance(token, str):
            raise DecodeError(
                f"{self.name} token must be a string, got {type(token).__name__}",
                schema=self.name,
                token=token,
            )
        if not token:
            raise DecodeError(f"{self.name} token is empty", schema=self.name, token=token)

        segments = token.split(self.delimiter)
        if len(segments) != self.arity:
            raise DecodeError(
                f"{self.name} token expects {self.arity} segments separated by "
                f"{self.delimiter!r}, got {len(segments)}",
                schema=self.name,
                token=token,
            )
        for field, segment in zip(self.fields, segments):
            if not segment and field not in self.optional:
                raise DecodeError(
                    f"{self.name} token is missing {field!r}", schema=self.name, token=token
                )
        return self._record(*segments)

    def fits(self, value: Optional[object]) -> bool:
        """Whether ``value`` can travel in one segment of this schema."""
        return value is None or self.delimiter not in str(value)

    def try_decode(self, token: object) -> Optional[NamedTuple]:
        try:
            return self.decode(token)
        except DecodeError:
            return None

    def is_valid(self, token: object) -> bool:
        return self.try_decode(token) is not None

    def __repr__(self) -> str:
        return f"TokenSchema({self.name!r}, {self.fields!r}, delimiter={self.delimiter!r})"

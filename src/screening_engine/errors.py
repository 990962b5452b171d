"""Error taxonomy raised by the screening engine.

Every error derives from :class:`ScreeningError` so callers can catch the
whole family.  The server maps each subclass onto an HTTP status in
``screening_server.errors``.

  - ValidationError: caller input is wrong; carries every violation found
  - ConfigurationError: stored rules or catalog content are unusable
  - IntegrityError: stored state contradicts itself
  - EvaluationError: a rule could not be parsed or did not finish in budget
"""

from dataclasses import dataclass, field


class ScreeningError(Exception):
    """Base class for engine errors."""


@dataclass(frozen=True)
class FieldError:
    """A violation attached to a named input field."""

    field: str
    message: str


class ValidationError(ScreeningError):
    """Aggregated input violations.

    Validation collects every problem before raising so the caller sees
    all of them at once.  Use :meth:`add` / :meth:`add_field` while
    checking and :meth:`raise_if_any` at the end.
    """

    def __init__(
        self,
        messages: list[str] | None = None,
        field_errors: list[FieldError] | None = None,
    ):
        self.messages: list[str] = list(messages or [])
        self.field_errors: list[FieldError] = list(field_errors or [])
        super().__init__(self._summary())

    def add(self, message: str) -> None:
        self.messages.append(message)
        self.args = (self._summary(),)

    def add_field(self, field_name: str, message: str) -> None:
        self.field_errors.append(FieldError(field_name, message))
        self.args = (self._summary(),)

    @property
    def has_errors(self) -> bool:
        return bool(self.messages or self.field_errors)

    def raise_if_any(self) -> None:
        if self.has_errors:
            raise self

    def _summary(self) -> str:
        parts = list(self.messages)
        parts.extend(f"{fe.field}: {fe.message}" for fe in self.field_errors)
        return "; ".join(parts) or "Validation failed"


class ConfigurationError(ScreeningError):
    """Catalog content or a stored rule produced something unusable."""


class IntegrityError(ScreeningError):
    """Persisted session state violates an engine invariant."""


class EvaluationError(ScreeningError):
    """A rule failed to parse, raised at runtime, or exceeded its step budget."""

"""Exception hierarchy for familycal.

Boundary validation errors subclass ``ValueError`` and lookup failures subclass
``KeyError`` so callers that only know the builtin types still catch them.
"""


class FamilyCalError(Exception):
    """Base exception for all familycal errors."""


class RecurrenceRuleError(FamilyCalError, ValueError):
    """A recurrence rule payload is malformed.

    Raised when:
    - interval is missing or below 1
    - a weekday name cannot be resolved
    - neither or both of endDate/endCount are present
    - the frequency type is unknown
    """


class SeriesValidationError(FamilyCalError, ValueError):
    """An event series record is invalid (e.g. end not after start)."""


class OccurrenceNotFoundError(FamilyCalError, KeyError):
    """The requested occurrence is not generated by its series' rule.

    Also raised for edits that reference a series the caller does not hold.
    """


class RecurrenceExpansionError(FamilyCalError):
    """Generating occurrence dates for a rule failed."""


class InstanceIdError(FamilyCalError, ValueError):
    """A composite instance identifier cannot be decoded."""

"""Exceptions raised by Corral.

Only malformed documents and misuse raise. Odd commands never do; the
classifier and validator degrade to the safest answer instead.
"""

from __future__ import annotations


class CorralError(Exception):
    """Base class for all Corral errors."""


class ProposalError(CorralError):
    """Proposal output is missing, unparseable, or structurally invalid."""


class ReviewFileError(CorralError):
    """A review document could not be read or does not match the schema."""


class SettingsError(CorralError):
    """The permission settings file could not be read or written."""


class ReviewClosedError(CorralError):
    """A transition was attempted on a review that was already committed."""

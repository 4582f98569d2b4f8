"""
Corral - Round up Claude Code permission grants.

Collects allowed commands across projects, validates proposed wildcard
groupings, and walks a human through approving them.
"""

from __future__ import annotations

__version__ = "0.1.0"

from corral.core.merge import merge_dispositions
from corral.core.review import ReviewSession
from corral.core.validator import validate

__all__ = ["merge_dispositions", "ReviewSession", "validate", "__version__"]

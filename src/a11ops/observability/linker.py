"""A11opsEventLinker: isolated event namespace for a11ops lifecycle events.

All a11ops subscribers register here. Separate from any other
pyventus usage in the host process.
"""

from __future__ import annotations

from pyventus.events import EventLinker


class A11opsEventLinker(EventLinker):
    """Isolated event namespace for a11ops lifecycle events."""

    pass

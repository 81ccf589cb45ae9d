"""
Base interface for external fetch capabilities.

A FetchRunner turns a request identity into exactly one file under a given
output template, or raises FetchFailure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class FetchRunner(ABC):
    """Abstract interface for external fetch implementations."""

    @abstractmethod
    async def run(self, identity: str, output_template: Path) -> None:
        """Fetch ``identity`` and write the result according to ``output_template``.

        The template names the output file; a ``%(ext)s`` placeholder, if
        present, is filled in by the implementation.

        Raises:
            FetchFailure: If the fetch exits unsuccessfully or cannot start.
        """
        ...

"""
Check interface.

A check scans one data source (the route table, controller sources, model
sources) and returns findings.  Checks read files locally and have no other
side effects; the ``Scanner`` owns ordering and failure isolation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List

from schemas.finding import Finding

logger = logging.getLogger(__name__)


class Check(ABC):
    """Abstract base class for every rule.

    Subclasses must implement:
    - ``name`` -- stable rule identifier, also used in inline ignores
    - ``run()`` -- the scan itself
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def run(self) -> List[Finding]:
        """Scan and return findings.

        Raises
        ------
        Exception
            Anything raised is isolated by ``Scanner.run`` and reported as a
            per-check failure.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

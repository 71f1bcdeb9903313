"""Asset code resolution and allocation."""

import random
import re
import string
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable

from asset_tracker.core.errors import ValidationError
from asset_tracker.core.repository import AssetRepository
from asset_tracker.models.asset import Asset

SUFFIX_LENGTH = 3
_BASE36 = string.digits + string.ascii_uppercase


class ResolutionKind(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    """Outcome of looking up a scanned code."""

    kind: ResolutionKind
    code: str
    asset: Asset | None = None

    @property
    def found(self) -> bool:
        return self.kind is ResolutionKind.FOUND


def allocated_id_pattern(prefix: str) -> re.Pattern:
    """Pattern matched by every code :meth:`IdentityResolver.allocate` produces."""
    return re.compile(rf"^{re.escape(prefix)}-\d{{4}}-[0-9A-Z]{{{SUFFIX_LENGTH}}}$")


class IdentityResolver:
    """Maps scanned codes onto stored assets and allocates fresh codes.

    Allocation is best effort: ``PREFIX-<year>-<3 base36 chars>`` leaves
    46656 codes per year, so collisions are possible and are reported by
    the repository as a conflict on insert.

    Args:
        repository: Asset repository of the current unit of work
        prefix: Fixed prefix of allocated codes
        today: Date source, used for the year component
        rng: Random source for the suffix
    """

    def __init__(
        self,
        repository: AssetRepository,
        prefix: str = "ZC",
        today: Callable[[], date] = date.today,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.prefix = prefix
        self._today = today
        self._rng = rng or random.Random()

    def resolve(self, code: str) -> Resolution:
        """Exact, case-sensitive lookup of a scanned or typed code."""
        code = (code or "").strip()
        if not code:
            raise ValidationError("Code is required")

        asset = self.repository.get(code)
        if asset is None:
            return Resolution(ResolutionKind.NOT_FOUND, code)
        return Resolution(ResolutionKind.FOUND, code, asset)

    def allocate(self) -> str:
        suffix = "".join(self._rng.choices(_BASE36, k=SUFFIX_LENGTH))
        return f"{self.prefix}-{self._today().year:04d}-{suffix}"

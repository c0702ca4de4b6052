from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Config dataclasses for the cost-table import pipeline.

These are the typed domain models produced by ``boq_import.config.loader``.
Defaults mirror the organisation-wide settings used when an estimate has no
explicit override.
"""

__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_UOMS",
    "DEFAULT_FALLBACK_CATEGORY",
    "DEFAULT_MAX_ROWS",
    "DEFAULT_ROUNDING_DECIMALS",
    "AddOnConfig",
    "AddOnDefaults",
    "CommitMode",
    "DatabaseConfig",
    "ImportSettings",
]

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Prelims",
    "Labour",
    "Material",
    "Equipment",
    "Subcon",
    "Other",
)
DEFAULT_UOMS: tuple[str, ...] = (
    "LS", "m", "m2", "m3", "unit", "lot", "day", "hour", "kg", "tonne",
)
DEFAULT_FALLBACK_CATEGORY = "Other"
DEFAULT_MAX_ROWS = 2000
DEFAULT_ROUNDING_DECIMALS = 2


class CommitMode(Enum):
    """How the reconciler applies its create/update/delete operations.

    SEQUENTIAL: each write is applied as soon as it is issued. A failure
        leaves earlier writes in place (no rollback) and the raised
        PersistenceFailure lists exactly which operations succeeded.
    ATOMIC: every operation is staged and applied inside one store
        transaction; a failure leaves the revision untouched.
    """
    SEQUENTIAL = "sequential"
    ATOMIC = "atomic"


@dataclass(frozen=True)
class AddOnConfig:
    """Cascade percentages and rounding rule for one top-level estimate."""
    revision_group_id: str
    prelims_pct: float = 0.0
    contingency_pct: float = 0.0
    profit_pct: float = 0.0
    tax_pct: float = 0.0
    rounding_decimals: int = DEFAULT_ROUNDING_DECIMALS

    def __post_init__(self) -> None:
        for name in ("prelims_pct", "contingency_pct", "profit_pct", "tax_pct"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within [0, 100], got {value}")
        if self.rounding_decimals < 0:
            raise ValueError(f"rounding_decimals must be >= 0, got {self.rounding_decimals}")


@dataclass(frozen=True)
class AddOnDefaults:
    """Default cascade percentages applied when an estimate has no AddOnConfig."""
    prelims_pct: float = 0.0
    contingency_pct: float = 0.0
    profit_pct: float = 0.0
    tax_pct: float = 0.0

    def for_group(self, revision_group_id: str, rounding_decimals: int) -> AddOnConfig:
        return AddOnConfig(
            revision_group_id=revision_group_id,
            prelims_pct=self.prelims_pct,
            contingency_pct=self.contingency_pct,
            profit_pct=self.profit_pct,
            tax_pct=self.tax_pct,
            rounding_decimals=rounding_decimals,
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback configuration.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportSettings:
    """Root configuration object for the import pipeline."""
    max_rows: int = DEFAULT_MAX_ROWS
    rounding_decimals: int = DEFAULT_ROUNDING_DECIMALS
    categories: tuple[str, ...] = DEFAULT_CATEGORIES
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY
    uoms: tuple[str, ...] = DEFAULT_UOMS
    commit_mode: CommitMode = CommitMode.SEQUENTIAL
    storage_directory: str = "./import-files"
    add_ons: AddOnDefaults = field(default_factory=AddOnDefaults)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

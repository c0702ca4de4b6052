from __future__ import annotations

from dataclasses import dataclass

from .config_models import (
    DEFAULT_CATEGORIES,
    DEFAULT_FALLBACK_CATEGORY,
    DEFAULT_MAX_ROWS,
    DEFAULT_ROUNDING_DECIMALS,
    ImportSettings,
)

"""ImportContext: explicit per-import state handed to validate() and commit().

Nothing in the pipeline reads the target revision or the acting user from
ambient state; everything arrives through this object.
"""

__all__ = [
    "ImportContext",
]


@dataclass(frozen=True)
class ImportContext:
    revision_id: str
    revision_group_id: str
    actor_id: str
    rounding_decimals: int = DEFAULT_ROUNDING_DECIMALS
    categories: tuple[str, ...] = DEFAULT_CATEGORIES
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY
    max_rows: int = DEFAULT_MAX_ROWS
    file_name: str = ""
    file_type: str | None = None
    file_bytes: bytes | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ImportSettings,
        *,
        revision_id: str,
        revision_group_id: str,
        actor_id: str,
        rounding_decimals: int | None = None,
        file_name: str = "",
        file_type: str | None = None,
        file_bytes: bytes | None = None,
    ) -> ImportContext:
        return cls(
            revision_id=revision_id,
            revision_group_id=revision_group_id,
            actor_id=actor_id,
            rounding_decimals=(
                settings.rounding_decimals if rounding_decimals is None else rounding_decimals
            ),
            categories=tuple(settings.categories),
            fallback_category=settings.fallback_category,
            max_rows=settings.max_rows,
            file_name=file_name,
            file_type=file_type,
            file_bytes=file_bytes,
        )

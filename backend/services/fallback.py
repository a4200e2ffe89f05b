"""
Fallback policy — decides once per mount whether a view shows live rows or
the bundled demo dataset, and swaps fallback for live wholesale.

A view's dataset is a dict of section name → rows (e.g. {"orders": [...]}).
The two variants are never mixed: the first live row replaces every
fallback section with empty live sections before it is applied.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from config import settings
from domain.enums import DataSourceKind

logger = logging.getLogger(__name__)

Dataset = dict[str, list[dict]]
DatasetFactory = Callable[[], Dataset]


@dataclass(frozen=True)
class DataSource:
    kind: DataSourceKind
    dataset: Dataset = field(default_factory=dict)

    @property
    def is_live(self) -> bool:
        return self.kind == DataSourceKind.LIVE

    @property
    def is_fallback(self) -> bool:
        return self.kind == DataSourceKind.FALLBACK


def is_empty(dataset: Dataset) -> bool:
    return not any(dataset.values())


class FallbackPolicy:
    """Resolves the initial data source and performs the fallback → live swap."""

    def __init__(self, factory: Optional[DatasetFactory], enabled: bool | None = None):
        self.factory = factory
        self.enabled = settings.fallback_enabled if enabled is None else enabled

    def resolve(self, snapshot: Dataset) -> DataSource:
        """
        Pick the data source for a freshly loaded snapshot.

        Args:
            snapshot: Rows per section as returned by the snapshot loader

        Returns:
            LIVE with the snapshot, or FALLBACK with the demo dataset when the
            snapshot is empty and a fallback exists.
        """
        if not is_empty(snapshot) or not self.enabled or self.factory is None:
            return DataSource(DataSourceKind.LIVE, snapshot)
        dataset = self.factory()
        if not dataset:
            return DataSource(DataSourceKind.LIVE, snapshot)
        logger.info(f"Empty snapshot, showing fallback dataset ({', '.join(dataset)})")
        return DataSource(DataSourceKind.FALLBACK, dataset)

    @staticmethod
    def ensure_live(source: DataSource) -> DataSource:
        """
        Return a live source. A fallback source is replaced by empty live
        sections; a live source is returned unchanged.
        """
        if source.is_live:
            return source
        logger.info("First live row observed, dropping fallback dataset")
        return DataSource(DataSourceKind.LIVE, {section: [] for section in source.dataset})

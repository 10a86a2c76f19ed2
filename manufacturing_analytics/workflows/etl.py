"""
Manufacturing ETL

Runs the batch pipeline over the raw intake buffer:

1. Validate the raw frame (report only)
2. Normalize the six dimensions
3. Load production records
4. (Re)install the metric views

With ``PIPELINE_ATOMIC=true`` steps 2-4 share one transaction, so an
interrupted run leaves the store untouched. Otherwise every step commits on
its own and a failure keeps whatever earlier steps committed.

Usage:
    manufacturing-etl --csv exports/production.csv
    manufacturing-etl --create-schema --install-views
    manufacturing-etl --grant-read-only
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.analytics.views import install_views
from manufacturing_analytics.config import get_settings
from manufacturing_analytics.config.logging import configure_logging
from manufacturing_analytics.database.access import grant_read_only_access
from manufacturing_analytics.database.connection import (
    close_database,
    create_schema,
    get_db,
    init_database,
)
from manufacturing_analytics.ingestion.raw_intake import RawIntakeReader
from manufacturing_analytics.quality.validators import DataValidator, ValidationResult, create_raw_intake_validator
from manufacturing_analytics.transformation.fact_loader import FactLoader, FactLoadResult
from manufacturing_analytics.transformation.normalizers import DimensionNormalizer, NormalizationResult

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run"""
    validation: ValidationResult
    dimensions: List[NormalizationResult]
    facts: FactLoadResult
    views: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validation": {
                "status": self.validation.status.value,
                "passed_checks": self.validation.passed_checks,
                "total_checks": self.validation.total_checks,
                "failed": [check.name for check in self.validation.checks if not check.passed],
            },
            "dimensions": {
                result.dimension: {"distinct_keys": result.distinct_keys, "inserted": result.inserted, "updated": result.updated}
                for result in self.dimensions
            },
            "facts": {
                "rows_seen": self.facts.rows_seen,
                "rows_loaded": self.facts.rows_loaded,
                "unresolved_references": self.facts.unresolved_references,
                "rejections": self.facts.rejections.to_dict(),
            },
            "views": self.views,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class ManufacturingETL:
    """
    Normalize + load over one session.

    Example:
        async with get_db() as session:
            result = await ManufacturingETL(session).run(raw_df)
    """

    def __init__(
        self,
        session: AsyncSession,
        validator: Optional[DataValidator] = None,
        normalizer: Optional[DimensionNormalizer] = None,
        loader: Optional[FactLoader] = None,
    ):
        self.session = session
        self.validator = validator or create_raw_intake_validator()
        self.normalizer = normalizer or DimensionNormalizer(session)
        self.loader = loader or FactLoader(session)

    def validate(self, raw: pl.DataFrame) -> ValidationResult:
        return self.validator.validate(raw)

    async def normalize(self, raw: pl.DataFrame) -> List[NormalizationResult]:
        return await self.normalizer.normalize(raw)

    async def load(self, raw: pl.DataFrame) -> FactLoadResult:
        return await self.loader.load(raw)

    async def run(self, raw: pl.DataFrame) -> PipelineResult:
        """
        Validate, normalize and load ``raw``.

        Dimensions are always normalized before facts are loaded so that
        codes introduced by this batch resolve.
        """
        started_at = datetime.utcnow()
        logger.info("Starting manufacturing ETL", rows=len(raw))

        validation = self.validate(raw)
        dimensions = await self.normalize(raw)
        facts = await self.load(raw)

        result = PipelineResult(
            validation=validation,
            dimensions=dimensions,
            facts=facts,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )
        logger.info(
            "Manufacturing ETL complete",
            rows_loaded=facts.rows_loaded,
            rows_rejected=facts.rows_rejected,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result


async def read_raw(
    session: AsyncSession,
    reader: RawIntakeReader,
    csv_path: Optional[Union[str, Path]] = None,
    stage_csv: bool = False,
) -> pl.DataFrame:
    """Raw frame from a CSV export, or from the intake table"""
    if csv_path is None:
        return await reader.read_table(session)

    raw = reader.read_csv(csv_path)
    if stage_csv:
        await reader.ensure_table(session)
        await reader.stage_records(session, raw)
    return raw


async def run_pipeline(
    csv_path: Optional[Union[str, Path]] = None,
    stage_csv: bool = False,
    atomic: Optional[bool] = None,
    with_views: Optional[bool] = None,
) -> PipelineResult:
    """
    Run the whole pipeline against the initialized database.

    Args:
        csv_path: Read the raw rows from this export instead of the intake table
        stage_csv: Also append the export's rows to the intake table
        atomic: Override ``PipelineSettings.atomic``
        with_views: Override ``PipelineSettings.install_views``
    """
    settings = get_settings().pipeline
    atomic = settings.atomic if atomic is None else atomic
    with_views = settings.install_views if with_views is None else with_views
    reader = RawIntakeReader()

    if atomic:
        async with get_db() as session:
            raw = await read_raw(session, reader, csv_path, stage_csv)
            result = await ManufacturingETL(session).run(raw)
            if with_views:
                result.views = await install_views(session)
        return result

    logger.info("Running pipeline without a shared transaction")
    async with get_db() as session:
        raw = await read_raw(session, reader, csv_path, stage_csv)

    started_at = datetime.utcnow()
    async with get_db() as session:
        etl = ManufacturingETL(session)
        validation = etl.validate(raw)
        dimensions = await etl.normalize(raw)
    async with get_db() as session:
        facts = await FactLoader(session).load(raw)

    result = PipelineResult(
        validation=validation,
        dimensions=dimensions,
        facts=facts,
        started_at=started_at,
    )
    if with_views:
        async with get_db() as session:
            result.views = await install_views(session)
    result.completed_at = datetime.utcnow()
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manufacturing-etl",
        description="Load the raw manufacturing intake into the analytics store",
    )
    parser.add_argument(
        "--csv",
        type=Path,
        help="Read raw rows from a spreadsheet CSV export instead of the intake table",
    )
    parser.add_argument(
        "--stage-csv",
        action="store_true",
        help="Append the CSV rows to the intake table before loading",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create the dimension and fact tables if missing",
    )
    parser.add_argument(
        "--install-views",
        action="store_true",
        help="Only (re)install the metric views, do not load",
    )
    parser.add_argument(
        "--grant-read-only",
        action="store_true",
        help="Provision the read-only dashboard login (READONLY_USER), do not load",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    await init_database()
    try:
        if args.create_schema:
            await create_schema()

        if args.install_views or args.grant_read_only:
            summary: Dict[str, Any] = {}
            async with get_db() as session:
                if args.install_views:
                    summary["views"] = await install_views(session)
                if args.grant_read_only:
                    summary["read_only_login"] = await grant_read_only_access(session)
            return summary

        result = await run_pipeline(csv_path=args.csv, stage_csv=args.stage_csv)
        return result.to_dict()
    finally:
        await close_database()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.stage_csv and args.csv is None:
        build_parser().error("--stage-csv requires --csv")

    configure_logging(args.log_level, stream=sys.stderr)
    summary = asyncio.run(_run(args))
    print(json.dumps(summary, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())

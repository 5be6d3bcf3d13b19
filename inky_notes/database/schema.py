"""Schema creation and additive migration of the notes table."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import Column, Table, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..utils.resilience import RetryConfig, async_retry_with_backoff
from .models import NOTE_INDEXES, notes_table

logger = logging.getLogger(__name__)


@dataclass
class SchemaReport:
    """What a schema pass changed."""

    created_table: bool = False
    added_columns: List[str] = field(default_factory=list)
    created_indexes: List[str] = field(default_factory=list)
    failed_indexes: List[str] = field(default_factory=list)


class SchemaManager:
    """Brings an existing or missing table up to the current column set.

    Columns are only ever added, never dropped or renamed. Indexes are created
    independently; an index that keeps failing is logged and skipped.
    """

    def __init__(
        self,
        table: Table = notes_table,
        indexes: Sequence[Tuple[str, str]] = NOTE_INDEXES,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.table = table
        self.indexes = list(indexes)
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.1,
            max_delay=2.0,
            retryable_exceptions=[SQLAlchemyError],
        )

    async def apply(self, engine: AsyncEngine) -> SchemaReport:
        """Create or migrate the table, then create its indexes."""
        report = SchemaReport()

        async with engine.begin() as conn:
            existing = await conn.run_sync(self._existing_columns)

            if existing is None:
                logger.info(f"Creating table '{self.table.name}'")
                await conn.run_sync(self.table.create)
                report.created_table = True
            else:
                logger.info(
                    f"Found existing table '{self.table.name}' with columns: {sorted(existing)}"
                )
                for column in self.table.columns:
                    if column.name in existing:
                        continue
                    if column.primary_key:
                        logger.warning(
                            f"Primary key column '{column.name}' missing from "
                            f"'{self.table.name}'; it cannot be added in place"
                        )
                        continue
                    ddl = self._add_column_ddl(column, conn.dialect)
                    logger.info(f"Adding column {column.name}: {ddl}")
                    await conn.execute(text(ddl))
                    report.added_columns.append(column.name)

        create_index = async_retry_with_backoff(self.retry_config)(self._create_index)
        for index_name, column_name in self.indexes:
            try:
                await create_index(engine, index_name, column_name)
                report.created_indexes.append(index_name)
            except SQLAlchemyError as e:
                logger.error(f"Failed to create index {index_name}: {e}")
                report.failed_indexes.append(index_name)

        return report

    def _existing_columns(self, sync_conn: Connection) -> Optional[List[str]]:
        """Column names of the table, or ``None`` when it does not exist."""
        inspector = inspect(sync_conn)
        if not inspector.has_table(self.table.name):
            return None
        return [col["name"] for col in inspector.get_columns(self.table.name)]

    def _add_column_ddl(self, column: Column, dialect) -> str:
        """``ALTER TABLE ... ADD COLUMN`` with the column's declared default."""
        ddl = (
            f'ALTER TABLE {self.table.name} ADD COLUMN "{column.name}" '
            f"{column.type.compile(dialect=dialect)}"
        )
        default = column.server_default
        if default is not None:
            # SQLite only accepts NOT NULL on added columns that carry a default
            if not column.nullable:
                ddl += " NOT NULL"
            ddl += f" DEFAULT {default.arg.text}"
        return ddl

    async def _create_index(
        self, engine: AsyncEngine, index_name: str, column_name: str
    ) -> None:
        async with engine.begin() as conn:
            await conn.execute(
                text(
                    f"CREATE INDEX IF NOT EXISTS {index_name} "
                    f"ON {self.table.name}({column_name})"
                )
            )
        logger.debug(f"Index {index_name} ready")

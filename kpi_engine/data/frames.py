"""
Polars Frame Record Source

RecordSource over in-memory polars frames or a directory of parquet/CSV
files, one per record type. Frames are normalized (UTC timestamps, optional
columns filled) and validated once when the source is built.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from kpi_engine.metrics.exceptions import DataSourceUnavailable
from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    ServiceRequestRecord,
    ensure_utc,
)
from kpi_engine.quality.validators import VALIDATORS

logger = structlog.get_logger(__name__)

FRAME_NAMES = ("orders", "order_items", "customers", "service_requests", "products")

# Optional columns and the dtype they get when absent
OPTIONAL_COLUMNS: Dict[str, Dict[str, pl.DataType]] = {
    "orders": {"wilaya": pl.Utf8},
    "order_items": {},
    "customers": {"name": pl.Utf8, "wilaya": pl.Utf8},
    "service_requests": {},
    "products": {"category_name": pl.Utf8, "minimum_stock": pl.Int64, "is_active": pl.Boolean},
}

TIMESTAMP_COLUMNS = {
    "orders": "created_at",
    "customers": "created_at",
    "service_requests": "created_at",
}


def _money(value) -> Decimal:
    return Decimal(str(value))


def normalize_frame(name: str, df: pl.DataFrame) -> pl.DataFrame:
    """Fill absent optional columns and convert timestamps to UTC."""
    missing = [
        pl.lit(None, dtype=dtype).alias(column)
        for column, dtype in OPTIONAL_COLUMNS[name].items()
        if column not in df.columns
    ]
    if missing:
        df = df.with_columns(missing)

    column = TIMESTAMP_COLUMNS.get(name)
    if column and column in df.columns:
        dtype = df.schema[column]
        if dtype == pl.Utf8:
            df = df.with_columns(pl.col(column).str.to_datetime(time_zone="UTC"))
        elif isinstance(dtype, pl.Datetime) and dtype.time_zone is None:
            df = df.with_columns(pl.col(column).dt.replace_time_zone("UTC"))
        elif isinstance(dtype, pl.Datetime):
            df = df.with_columns(pl.col(column).dt.convert_time_zone("UTC"))
    return df


def _between(df: pl.DataFrame, column: str, start: Optional[datetime], end: Optional[datetime]) -> pl.DataFrame:
    condition = pl.lit(True)
    if start is not None:
        condition = condition & (pl.col(column) >= ensure_utc(start))
    if end is not None:
        condition = condition & (pl.col(column) < ensure_utc(end))
    return df.filter(condition)


class FrameRecordSource:
    """
    RecordSource backed by polars DataFrames.

    Example:
        source = FrameRecordSource.from_directory("data/generated")
        composer = DashboardComposer(source)
    """

    def __init__(
        self,
        orders: pl.DataFrame,
        order_items: pl.DataFrame,
        customers: pl.DataFrame,
        service_requests: pl.DataFrame,
        products: pl.DataFrame,
        validate: bool = True,
    ):
        frames = {
            "orders": orders,
            "order_items": order_items,
            "customers": customers,
            "service_requests": service_requests,
            "products": products,
        }
        self.frames: Dict[str, pl.DataFrame] = {}
        for name, df in frames.items():
            df = normalize_frame(name, df)
            if validate:
                VALIDATORS[name]().validate(df).raise_for_status()
            self.frames[name] = df

        logger.info("Frame source ready", **{name: df.height for name, df in self.frames.items()})

    @classmethod
    def from_directory(cls, path: Union[str, Path], validate: bool = True) -> "FrameRecordSource":
        """
        Load one parquet (preferred) or CSV file per record type.

        Raises:
            DataSourceUnavailable: A frame file is missing or unreadable
        """
        directory = Path(path)
        frames = {}
        for name in FRAME_NAMES:
            parquet = directory / f"{name}.parquet"
            csv = directory / f"{name}.csv"
            try:
                if parquet.exists():
                    frames[name] = pl.read_parquet(parquet)
                elif csv.exists():
                    frames[name] = pl.read_csv(csv, try_parse_dates=True)
                else:
                    raise FileNotFoundError(f"No {name}.parquet or {name}.csv in {directory}")
            except (OSError, pl.exceptions.ComputeError) as e:
                logger.error("Failed to load frame", frame=name, path=str(directory), error=str(e))
                raise DataSourceUnavailable(
                    f"Failed to load {name} frame", details={"frame": name, "error": str(e)}
                ) from e
        return cls(validate=validate, **frames)

    async def fetch_orders(self, start: Optional[datetime], end: Optional[datetime]) -> List[OrderRecord]:
        df = _between(self.frames["orders"], "created_at", start, end)
        return [
            OrderRecord(
                id=str(row["id"]),
                customer_id=str(row["customer_id"]),
                total_amount=_money(row["total_amount"]),
                status=row["status"],
                created_at=row["created_at"],
                wilaya=row["wilaya"],
            )
            for row in df.iter_rows(named=True)
        ]

    async def fetch_order_items(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[OrderItemRecord]:
        parents = _between(self.frames["orders"], "created_at", start, end).select(
            pl.col("id").alias("order_id")
        )
        df = self.frames["order_items"].join(parents, on="order_id", how="semi")
        return [
            OrderItemRecord(
                order_id=str(row["order_id"]),
                product_id=str(row["product_id"]),
                quantity=int(row["quantity"]),
                unit_price=_money(row["unit_price"]),
                total_price=_money(row["total_price"]),
            )
            for row in df.iter_rows(named=True)
        ]

    async def fetch_customers(self) -> List[CustomerRecord]:
        return [
            CustomerRecord(
                id=str(row["id"]),
                created_at=row["created_at"],
                name=row["name"],
                wilaya=row["wilaya"],
            )
            for row in self.frames["customers"].iter_rows(named=True)
        ]

    async def fetch_service_requests(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[ServiceRequestRecord]:
        df = _between(self.frames["service_requests"], "created_at", start, end)
        return [
            ServiceRequestRecord(id=str(row["id"]), status=row["status"], created_at=row["created_at"])
            for row in df.iter_rows(named=True)
        ]

    async def fetch_products(self) -> List[ProductRecord]:
        return [
            ProductRecord(
                id=str(row["id"]),
                name=row["name"],
                stock_quantity=int(row["stock_quantity"]),
                category_name=row["category_name"],
                minimum_stock=row["minimum_stock"],
                is_active=True if row["is_active"] is None else bool(row["is_active"]),
            )
            for row in self.frames["products"].iter_rows(named=True)
        ]

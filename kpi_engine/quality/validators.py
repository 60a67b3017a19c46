"""
Record Frame Validation

Rule-based quality checks run on polars frames before a frame source hands
their rows to the metrics engine. Error-severity failures reject the frame;
warnings are logged and the frame is used.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from kpi_engine.metrics.exceptions import RecordValidationError
from kpi_engine.metrics.records import OrderStatus, ServiceRequestStatus

logger = structlog.get_logger(__name__)

Check = Callable[[pl.DataFrame], "ValidationCheck"]


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # rejects the frame
    WARNING = "warning"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    frame: str
    status: ValidationStatus
    checks: List[ValidationCheck] = field(default_factory=list)

    @property
    def failures(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING]

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if not self.checks:
            return 100.0
        return sum(1 for c in self.checks if c.passed) / len(self.checks) * 100

    def raise_for_status(self) -> None:
        """Raise RecordValidationError when the frame failed."""
        if self.status == ValidationStatus.FAILED:
            raise RecordValidationError(
                f"Frame '{self.frame}' failed {len(self.failures) or len(self.warnings)} validation checks",
                details={"frame": self.frame, "checks": [c.message for c in self.failures or self.warnings]},
            )


class DataValidator:
    """
    Chainable set of column checks for one frame.

    Example:
        validator = DataValidator("orders")
        validator.add_not_null_check("id").add_range_check("total_amount", min_value=0)
        validator.validate(df).raise_for_status()
    """

    def __init__(self, frame: str = "frame", strict_mode: bool = False):
        self.frame = frame
        self.strict_mode = strict_mode  # warnings fail the frame too
        self._checks: List[Check] = []

    def _column_check(
        self,
        kind: str,
        column: str,
        severity: ValidationSeverity,
        count_failures: Callable[[pl.DataFrame], int],
        describe: Callable[[int], str],
        details: Optional[Dict[str, Any]] = None,
    ) -> "DataValidator":
        name = f"{kind}_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )
            failed = count_failures(df)
            return ValidationCheck(
                name=name,
                passed=failed == 0,
                severity=severity,
                message=describe(failed),
                details={**(details or {}), "failed": failed},
                failed_rows=failed,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._column_check(
            "not_null",
            column,
            severity,
            lambda df: df[column].null_count(),
            lambda n: f"Column '{column}' has {n} null values",
        )

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._column_check(
            "unique",
            column,
            severity,
            lambda df: df.height - df[column].n_unique(),
            lambda n: f"Column '{column}' has {n} duplicate values",
        )

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        def out_of_range(df: pl.DataFrame) -> int:
            condition = pl.lit(False)
            if min_value is not None:
                condition = condition | (pl.col(column) < min_value)
            if max_value is not None:
                condition = condition | (pl.col(column) > max_value)
            return df.filter(condition).height

        return self._column_check(
            "range",
            column,
            severity,
            out_of_range,
            lambda n: f"Column '{column}' has {n} values outside [{min_value}, {max_value}]",
            details={"min": min_value, "max": max_value},
        )

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        if allow_zero:
            return self.add_range_check(column, min_value=0, severity=severity)
        return self._column_check(
            "positive",
            column,
            severity,
            lambda df: df.filter(pl.col(column) <= 0).height,
            lambda n: f"Column '{column}' has {n} non-positive values",
        )

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._column_check(
            "enum",
            column,
            severity,
            lambda df: df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height,
            lambda n: f"Column '{column}' has {n} values outside {allowed_values}",
            details={"allowed_values": allowed_values},
        )

    def add_referential_integrity_check(
        self,
        column: str,
        reference: pl.DataFrame,
        reference_column: str = "id",
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        keys = reference[reference_column].to_list()
        return self._column_check(
            "ref_integrity",
            column,
            severity,
            lambda df: df.filter(~pl.col(column).is_in(keys) & pl.col(column).is_not_null()).height,
            lambda n: f"Column '{column}' has {n} orphan records",
        )

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all checks on a frame.

        Args:
            df: Frame to validate

        Returns:
            ValidationResult with all check results
        """
        started = datetime.now(timezone.utc)
        checks = [check(df) for check in self._checks]

        for check in checks:
            if not check.passed:
                logger.warning(
                    "Validation check failed",
                    frame=self.frame,
                    check=check.name,
                    message=check.message,
                    severity=check.severity.value,
                )

        errors = sum(1 for c in checks if not c.passed and c.severity == ValidationSeverity.ERROR)
        warnings = sum(1 for c in checks if not c.passed and c.severity == ValidationSeverity.WARNING)
        if errors or (warnings and self.strict_mode):
            status = ValidationStatus.FAILED
        elif warnings:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            "Validation complete",
            frame=self.frame,
            status=status.value,
            rows=df.height,
            checks=len(checks),
            errors=errors,
            warnings=warnings,
            duration_ms=round((datetime.now(timezone.utc) - started).total_seconds() * 1000, 2),
        )
        return ValidationResult(frame=self.frame, status=status, checks=checks)


# Pre-built validators for the record frames
def create_orders_validator() -> DataValidator:
    return (
        DataValidator("orders")
        .add_not_null_check("id")
        .add_unique_check("id")
        .add_not_null_check("customer_id")
        .add_not_null_check("created_at")
        .add_not_null_check("total_amount")
        .add_positive_check("total_amount")
        .add_enum_check("status", [s.value for s in OrderStatus])
    )


def create_order_items_validator() -> DataValidator:
    return (
        DataValidator("order_items")
        .add_not_null_check("order_id")
        .add_not_null_check("product_id")
        .add_positive_check("quantity", allow_zero=False)
        .add_positive_check("total_price")
    )


def create_customers_validator() -> DataValidator:
    return (
        DataValidator("customers")
        .add_not_null_check("id")
        .add_unique_check("id")
        .add_not_null_check("created_at")
    )


def create_service_requests_validator() -> DataValidator:
    return (
        DataValidator("service_requests")
        .add_not_null_check("id")
        .add_not_null_check("created_at")
        .add_enum_check("status", [s.value for s in ServiceRequestStatus])
    )


def create_products_validator() -> DataValidator:
    return (
        DataValidator("products")
        .add_not_null_check("id")
        .add_unique_check("id")
        .add_not_null_check("name")
        .add_range_check("stock_quantity", min_value=0)
        .add_range_check("minimum_stock", min_value=0, severity=ValidationSeverity.WARNING)
    )


VALIDATORS: Dict[str, Callable[[], DataValidator]] = {
    "orders": create_orders_validator,
    "order_items": create_order_items_validator,
    "customers": create_customers_validator,
    "service_requests": create_service_requests_validator,
    "products": create_products_validator,
}

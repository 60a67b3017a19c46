"""
Synthetic Dataset Generator

Generates a reproducible back office dataset for demos and local development:
- Wilayas and product categories
- Customers spread over the last three years
- Products with stock levels around their reorder points
- Orders with a realistic status mix, and their items
- Technician service requests

All timestamps are UTC and relative to a reference instant, so the same seed
and reference produce the same frames.
"""

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import polars as pl
import structlog
from faker import Faker

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

WILAYAS = [
    "Alger", "Oran", "Constantine", "Blida", "Setif", "Annaba",
    "Batna", "Tlemcen", "Bejaia", "Tizi Ouzou", "Ouargla", "Djelfa",
]

CATEGORIES = {
    "Air Conditioning": (45000, 180000),
    "Heating": (15000, 90000),
    "Water Heaters": (20000, 70000),
    "Kitchen Appliances": (8000, 120000),
    "Spare Parts": (500, 8000),
    "Accessories": (300, 5000),
}

ORDER_STATUSES = {
    "PENDING": 0.06,
    "CONFIRMED": 0.06,
    "PROCESSING": 0.05,
    "SHIPPED": 0.10,
    "DELIVERED": 0.63,
    "CANCELLED": 0.07,
    "REFUNDED": 0.03,
}
OPEN_STATUSES = ["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED"]

SERVICE_STATUSES = {
    "PENDING": 0.15,
    "SCHEDULED": 0.15,
    "IN_PROGRESS": 0.10,
    "COMPLETED": 0.50,
    "CANCELLED": 0.10,
}

SHIPPING_FEES = [0, 400, 600, 800]


class DatasetGenerator:
    """
    Reproducible generator for every record frame.

    Example:
        frames = DatasetGenerator(seed=7).generate_all(n_orders=5000)
        FrameRecordSource(**frames)
    """

    def __init__(self, seed: int = 42, reference: Optional[datetime] = None):
        self.seed = seed
        self.reference = (reference or datetime.now(timezone.utc)).astimezone(timezone.utc)
        self.rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    def _new_id(self) -> str:
        """UUID drawn from the seeded generator"""
        return str(uuid.UUID(bytes=self.rng.bytes(16), version=4))

    def _instant(self, days_back: int) -> datetime:
        """Uniform instant within the last `days_back` days."""
        seconds = int(self.rng.integers(1, days_back * 86400))
        return self.reference - timedelta(seconds=seconds)

    def generate_customers(self, n: int = 1000) -> pl.DataFrame:
        return pl.DataFrame({
            "id": [self._new_id() for _ in range(n)],
            "name": [self.fake.name() for _ in range(n)],
            "created_at": [self._instant(3 * 365) for _ in range(n)],
            "wilaya": self.rng.choice(WILAYAS, n).tolist(),
        })

    def generate_products(self, n: int = 200) -> pl.DataFrame:
        names = list(CATEGORIES)
        categories = self.rng.choice(names, n).tolist()
        prices = [
            round(float(self.rng.uniform(*CATEGORIES[category])), 2)
            for category in categories
        ]
        # Roughly one product in five sits at or below its reorder point
        minimum = self.rng.choice([5, 10, 15, 20], n)
        low = self.rng.random(n) < 0.2
        stock = np.where(
            low,
            self.rng.integers(0, minimum + 1),
            self.rng.integers(minimum + 1, 500),
        )
        return pl.DataFrame({
            "id": [self._new_id() for _ in range(n)],
            "name": [f"{self.fake.word().title()} {category}" for category in categories],
            "category_name": [None if self.rng.random() < 0.03 else c for c in categories],
            "price": prices,
            "stock_quantity": stock.tolist(),
            "minimum_stock": [None if self.rng.random() < 0.3 else int(m) for m in minimum],
            "is_active": (self.rng.random(n) > 0.05).tolist(),
        }, schema_overrides={"category_name": pl.Utf8, "minimum_stock": pl.Int64})

    def generate_orders(
        self,
        customers: pl.DataFrame,
        products: pl.DataFrame,
        n: int = 10000,
        days_back: int = 730,
    ) -> Dict[str, pl.DataFrame]:
        """Generate n orders and their items over the last `days_back` days."""
        customer_ids = customers["id"].to_list()
        customer_wilayas = dict(zip(customer_ids, customers["wilaya"].to_list()))
        catalog = products.select(["id", "price"]).to_dicts()
        statuses = list(ORDER_STATUSES)
        weights = list(ORDER_STATUSES.values())

        orders = []
        items = []
        for _ in range(n):
            order_id = self._new_id()
            customer_id = customer_ids[int(self.rng.integers(0, len(customer_ids)))]
            created_at = self._instant(days_back)

            subtotal = 0.0
            n_items = int(self.rng.choice([1, 2, 3, 4], p=[0.55, 0.25, 0.15, 0.05]))
            for _ in range(n_items):
                product = catalog[int(self.rng.integers(0, len(catalog)))]
                quantity = int(self.rng.choice([1, 2, 3], p=[0.75, 0.20, 0.05]))
                discount = float(self.rng.choice([0, 0, 0, 5, 10]))
                line_total = round(product["price"] * quantity * (1 - discount / 100), 2)
                items.append({
                    "order_id": order_id,
                    "product_id": product["id"],
                    "quantity": quantity,
                    "unit_price": product["price"],
                    "total_price": line_total,
                })
                subtotal += line_total

            if (self.reference - created_at).days > 7:
                status = str(self.rng.choice(statuses, p=weights))
            else:
                status = str(self.rng.choice(OPEN_STATUSES))

            orders.append({
                "id": order_id,
                "customer_id": customer_id,
                "total_amount": round(subtotal + float(self.rng.choice(SHIPPING_FEES)), 2),
                "status": status,
                "created_at": created_at,
                # 5% of orders carry no shipping wilaya
                "wilaya": None if self.rng.random() < 0.05 else customer_wilayas[customer_id],
            })

        return {
            "orders": pl.DataFrame(orders, schema_overrides={"wilaya": pl.Utf8}),
            "order_items": pl.DataFrame(items),
        }

    def generate_service_requests(self, n: int = 2000, days_back: int = 730) -> pl.DataFrame:
        return pl.DataFrame({
            "id": [self._new_id() for _ in range(n)],
            "status": self.rng.choice(list(SERVICE_STATUSES), n, p=list(SERVICE_STATUSES.values())).tolist(),
            "created_at": [self._instant(days_back) for _ in range(n)],
        })

    def generate_all(
        self,
        n_customers: int = 1000,
        n_products: int = 200,
        n_orders: int = 10000,
        n_service_requests: int = 2000,
    ) -> Dict[str, pl.DataFrame]:
        """Generate every frame the frame record source reads."""
        logger.info(
            "Generating dataset",
            seed=self.seed,
            reference=self.reference.isoformat(),
            customers=n_customers,
            products=n_products,
            orders=n_orders,
        )
        customers = self.generate_customers(n_customers)
        products = self.generate_products(n_products)
        frames = {
            "customers": customers,
            "products": products,
            **self.generate_orders(customers, products, n_orders),
            "service_requests": self.generate_service_requests(n_service_requests),
        }
        logger.info("Dataset generated", **{name: df.height for name, df in frames.items()})
        return frames

    @staticmethod
    def save(frames: Dict[str, pl.DataFrame], output_dir: Union[str, Path]) -> List[Path]:
        """Write frames as parquet files, one per record type."""
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        paths = []
        for name, df in frames.items():
            path = directory / f"{name}.parquet"
            df.write_parquet(path)
            logger.info("Frame saved", frame=name, rows=df.height, path=str(path))
            paths.append(path)
        return paths

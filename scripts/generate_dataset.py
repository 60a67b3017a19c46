"""
Demo Dataset Generator

Writes one parquet file per record type for the frame record source:

    python scripts/generate_dataset.py --orders 20000 --output data/generated
    METRICS_DATA_DIR=data/generated python run_server.py --dev
"""

import argparse
from pathlib import Path

from kpi_engine.config.logging import configure_logging
from kpi_engine.data.generators import DatasetGenerator

DEFAULT_OUTPUT = Path(__file__).parent.parent / "data" / "generated"


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic back office dataset")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Output directory")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--customers", type=int, default=1000)
    parser.add_argument("--products", type=int, default=200)
    parser.add_argument("--orders", type=int, default=10000)
    parser.add_argument("--service-requests", type=int, default=2000)
    args = parser.parse_args()

    configure_logging()
    generator = DatasetGenerator(seed=args.seed)
    frames = generator.generate_all(
        n_customers=args.customers,
        n_products=args.products,
        n_orders=args.orders,
        n_service_requests=args.service_requests,
    )
    generator.save(frames, args.output)


if __name__ == "__main__":
    main()

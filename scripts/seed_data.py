import argparse
import logging

from app.core.logging import setup_logging
from app.services.product_service import ProductCatalog
from app.storage import build_storage

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Seed the default product catalog.")
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the catalog after seeding.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()

    catalog = ProductCatalog(build_storage())
    created = catalog.seed_defaults()
    if created:
        print("Seeded {} product(s).".format(created))
    else:
        print("Seed skipped: default products already exist.")

    if args.list:
        for product in catalog.list_products():
            print("{:>5}  {:<30} {:>10.3f}".format(product.id, product.name, product.unit_weight))


if __name__ == "__main__":
    main()

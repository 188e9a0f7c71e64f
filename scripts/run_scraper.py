"""Manual scraper runner for testing and debugging brand adapters.

Runs one brand adapter against a live site and prints the normalized
products it returns. Needs the render service (or local Playwright) and a
GROQ_API_KEY for every brand except CARREFOUR.

Usage:
    python scripts/run_scraper.py --brand CARREFOUR --query "leche entera"
    python scripts/run_scraper.py --brand COTO --query pollo --limit 5
"""

import argparse
import asyncio
import os
import sys

# Add backend to path so we can import nutriscout modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from nutriscout.scrapers.base import ScrapeContext
from nutriscout.scrapers.brands import SUPPORTED_BRANDS
from nutriscout.scrapers.factory import AdapterFactory
from nutriscout.scrapers.register_adapters import register_all_adapters


async def run_scraper(brand: str, query: str, limit: int = 10):
    """Run a brand adapter and display the results.

    Args:
        brand: Canonical brand key (e.g., "COTO", "JUMBO")
        query: Product search term
        limit: Maximum number of products to display (default: 10)
    """
    factory = register_all_adapters(AdapterFactory())
    adapter = factory.create_brand_adapter(brand)
    if adapter is None:
        print(f"\nError: Unknown brand '{brand}'")
        print("\nAvailable brands:")
        for key in sorted(SUPPORTED_BRANDS):
            print(f"   - {key}")
        return

    print(f"\n{'='*70}")
    print(f"  Running {brand} adapter for '{query}'")
    print(f"{'='*70}\n")

    try:
        products = await adapter.scrape(query, ScrapeContext(store_name=brand, store_brand=brand))

        if not products:
            print("No products found.\n")
            return

        print(f"Found {len(products)} products\n")
        for i, product in enumerate(products[:limit], 1):
            print(f"[{i}] {product.product_name}")
            print(f"    Price: $ {product.price_current:,.2f}")
            if product.price_regular:
                print(f"    Regular: $ {product.price_regular:,.2f}")
            if product.brand:
                print(f"    Brand: {product.brand}")
            if product.quantity and product.unit:
                print(f"    Size: {product.quantity} {product.unit}")
            if product.nutritional_claims:
                print(f"    Claims: {', '.join(product.nutritional_claims)}")
            if product.product_url:
                print(f"    URL: {product.product_url[:80]}")
            print()

        prices = [p.price_current for p in products]
        print(f"{'='*70}")
        print(f"  Total: {len(products)}  Displayed: {min(limit, len(products))}")
        print(f"  Price range: $ {min(prices):,.2f} - $ {max(prices):,.2f}")
        print(f"{'='*70}\n")

    except Exception as e:
        print(f"\nError while scraping: {type(e).__name__}: {e}")
        import traceback
        traceback.print_exc()
        print()

    finally:
        await factory.aclose()


def main():
    """Parse arguments and run the adapter."""
    parser = argparse.ArgumentParser(
        description="Run a supermarket brand adapter for testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --brand CARREFOUR --query "leche entera"
  python scripts/run_scraper.py --brand VEA --query arroz --limit 5
        """,
    )
    parser.add_argument("--brand", required=True, type=str.upper, help="Brand key (e.g., 'COTO', 'JUMBO')")
    parser.add_argument("--query", required=True, help="Product search term")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of products to display (default: 10)",
    )

    args = parser.parse_args()
    asyncio.run(run_scraper(args.brand, args.query, args.limit))


if __name__ == "__main__":
    main()

import time
import logging
import asyncio
import argparse
import csv
from typing import List

import config
from models.models import MedicineQuery
from ranking import summarize
from search import batch_search, search_medicine_prices
from streaming.consumer import PriceDetailsClient

logger = logging.getLogger("med-price-scout")


# -----------------------------------------------------------------------------
# Helper functions for CSV batch processing
# -----------------------------------------------------------------------------
def read_medicines_from_csv(csv_path: str, default_pin: str = config.DEFAULT_PIN) -> List[MedicineQuery]:
    """Read medicine queries from CSV. Requires 'name' and 'pack' columns, 'pin' is optional."""
    queries = []
    with open(csv_path, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)

        fieldnames = reader.fieldnames or []
        if 'name' not in fieldnames or 'pack' not in fieldnames:
            raise ValueError("CSV file must contain 'name' and 'pack' columns")

        for row in reader:
            name = (row.get('name') or '').strip()
            pack = (row.get('pack') or '').strip()
            if not name or not pack:
                logger.warning("Skipping incomplete CSV row: %s", row)
                continue
            pin = (row.get('pin') or '').strip() or default_pin
            queries.append(MedicineQuery(name=name, pack=pack, pin=pin))
    return queries


def write_results_to_csv(outcomes, output_path: str):
    """Write batch search outcomes to CSV, one row per medicine."""
    if not outcomes:
        logger.warning("No results to write")
        return

    fieldnames = ['name', 'pack', 'pin', 'quotes', 'error',
                  'cheapest_vendor', 'cheapest_price', 'cheapest_url',
                  'fastest_vendor', 'fastest_delivery', 'fastest_url',
                  'best_vendor', 'best_price', 'best_url']

    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()

        for outcome in outcomes:
            picks = summarize(outcome.quotes)
            row = {
                'name': outcome.query.name,
                'pack': outcome.query.pack,
                'pin': outcome.query.pin,
                'quotes': len(outcome.quotes),
                'error': outcome.error,
            }

            cheapest, fastest, best = picks['cheapest'], picks['fastest'], picks['best']
            if cheapest:
                row['cheapest_vendor'] = cheapest.name
                row['cheapest_price'] = cheapest.final_charge
                row['cheapest_url'] = cheapest.link
            if fastest:
                row['fastest_vendor'] = fastest.name
                row['fastest_delivery'] = fastest.delivery_time
                row['fastest_url'] = fastest.link
            if best:
                row['best_vendor'] = best.name
                row['best_price'] = best.final_charge
                row['best_url'] = best.link

            writer.writerow(row)

    logger.info("Results written to %s", output_path)


def print_outcome(outcome):
    if not outcome.ok:
        print(f"Error: {outcome.error}")
        return

    for quote in outcome.quotes:
        print(f"{quote.name:<25} {quote.item or '-':<40} ₹{quote.final_charge}  {quote.delivery_time or '-'}")
        print(f"    {quote.link}")

    picks = summarize(outcome.quotes)
    print()
    for label, quote in picks.items():
        if quote:
            print(f"{label.title():<9}: {quote.name} ₹{quote.final_charge} ({quote.delivery_time})")


# -----------------------------------------------------------------------------
# Main entry point
# -----------------------------------------------------------------------------
async def main(argv=None):
    """Main entry point with argument parsing and routing."""

    start = time.perf_counter()

    parser = argparse.ArgumentParser(
        description="Medicine Price Comparison Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        python main.py --name Paracetamol --pack 10 --pin 700001
        python main.py --csv medicines.csv --output results.csv
        """
    )

    # Make --name and --csv mutually exclusive
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--name", help="Medicine name")
    group.add_argument("--csv", help="Path to CSV file with 'name', 'pack' and optional 'pin' columns")

    parser.add_argument("--pack", help="Pack size (required with --name)")
    parser.add_argument("--pin", default=config.DEFAULT_PIN, help="Delivery pin code")
    parser.add_argument("--output", help="Output CSV file path (only used with --csv)")
    parser.add_argument("--api-url", default=config.PRICE_API_URL, help="Base URL of the price API")

    args = parser.parse_args(argv)

    if args.name and not args.pack:
        parser.error("--pack is required with --name")

    client = PriceDetailsClient(base_url=args.api_url)

    if args.name:
        query = MedicineQuery(name=args.name, pack=args.pack, pin=args.pin)
        outcome = await search_medicine_prices(query, client)

        elapsed = time.perf_counter() - start
        logger.info("Search completed in %.2f seconds", elapsed)
        return outcome

    csv_path = args.csv
    output_path = args.output or 'results.csv'

    logger.info("Reading medicines from %s", csv_path)
    queries = read_medicines_from_csv(csv_path, default_pin=args.pin)
    logger.info("Found %d medicines to process", len(queries))

    outcomes = await batch_search(queries, client)
    write_results_to_csv(outcomes, output_path)

    elapsed = time.perf_counter() - start
    logger.info("Batch processing completed in %.2f seconds", elapsed)

    return outcomes


# -----------------------------------------------------------------------------
# Entrypoint
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    config.configure_logging()
    results = asyncio.run(main())

    if isinstance(results, list):
        successful = sum(1 for outcome in results if outcome.ok and outcome.quotes)
        total = len(results)

        print("\n" + "=" * 70)
        print("CSV BATCH PROCESSING SUMMARY")
        print("=" * 70)
        print(f"Total medicines processed: {total}")
        print(f"With quotes:               {successful}")
        print(f"Without quotes / failed:   {total - successful}")
        if total:
            print(f"Success rate:              {successful / total * 100:.1f}%")
        print("=" * 70 + "\n")
    else:
        print_outcome(results)

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pcs_scraper.errors import ScrapeError
from pcs_scraper.filters import filter_open_uk, today_string
from pcs_scraper.mappers.tender_mappers import map_open_uk_tender, map_scotland_tender
from pcs_scraper.scraper import JsonDocumentWriter, ScotlandCategoryScraper
from pcs_scraper.settings import DEFAULT_CONFIG_PATH, build_configs, parse_day_month_year

TODAY_MAX_PAGES = 5

log = logging.getLogger("pcs_scraper")


def _keyword_list(value: str) -> List[str]:
    keywords = [k.strip() for k in value.split(",") if k.strip()]
    if not keywords:
        raise argparse.ArgumentTypeError("at least one keyword is required")
    return keywords


def _day_month_year(value: str):
    try:
        return parse_day_month_year(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected DD/MM/YYYY, got {value!r}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape Public Contracts Scotland notices by category keyword.")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to selectors.yaml")
    parser.add_argument("--keywords", type=_keyword_list, help="Comma separated keywords (k1,k2)")
    parser.add_argument("--output", help="Override output JSON path")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--max-pages", type=int, help="Limit number of result pages (0 = all)")
    parser.add_argument("--no-detail", action="store_true", help="Skip detail page enrichment")
    parser.add_argument("--detail-delay", dest="detail_delay_ms", type=int, help="Delay between detail pages (ms)")
    parser.add_argument("--detail-retries", type=int, help="Navigation retries per detail page")
    parser.add_argument(
        "--detail-retry-backoff", dest="detail_retry_backoff_ms", type=int, help="Base retry backoff (ms)"
    )
    parser.add_argument("--no-abort", action="store_true", help="Keep going when a detail page fails")
    parser.add_argument("--published-from", type=_day_month_year, help="Publication date from (DD/MM/YYYY)")
    parser.add_argument("--published-to", type=_day_month_year, help="Publication date to (DD/MM/YYYY)")
    parser.add_argument("--today", action="store_true", help="Only keep notices dated today")
    parser.add_argument("--remap", type=Path, help="Map a saved raw export instead of scraping")
    parser.add_argument("--source", choices=["scotland", "open-uk"], default="scotland", help="Source of --remap file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    args = parser.parse_args(argv)

    # Flags that only switch a setting off; None keeps the YAML value
    args.headless = False if args.headful else None
    args.detail_pages = False if args.no_detail else None
    args.abort_on_failure = False if args.no_abort else None
    if args.today:
        args.abort_on_failure = False
        if args.max_pages is None:
            args.max_pages = TODAY_MAX_PAGES
        if args.output is None:
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            args.output = f"data/scotland_today_{stamp}.json"
    return args


def _load_records(path: Path) -> List[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("items") or []
    return list(data)


def remap(args: argparse.Namespace) -> Dict[str, Any]:
    records = _load_records(args.remap)
    total_raw = len(records)
    if args.source == "open-uk":
        if args.keywords:
            records = filter_open_uk(records, args.keywords)
        items = [map_open_uk_tender(record) for record in records]
    else:
        items = [map_scotland_tender(record) for record in records]
    log.info("Mapped %s of %s %s records", len(items), total_raw, args.source)
    return {
        "__meta": {
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
            "source": args.source,
            "sourceFile": str(args.remap),
            "totalRaw": total_raw,
            "totalItems": len(items),
        },
        "items": [item.model_dump(by_alias=True, mode="json") for item in items],
    }


async def async_main(args: argparse.Namespace) -> Path:
    scrape_cfg, selector_cfg = build_configs(Path(args.config), args)
    today = today_string() if args.today else None
    if today:
        log.info("Running today-only scrape for %s", today)
    async with ScotlandCategoryScraper(scrape_cfg, selector_cfg, today=today) as scraper:
        payload = await scraper.run()
    JsonDocumentWriter(scrape_cfg.output_path).write(payload)
    log.info("Saved %s items to %s", payload["__meta"]["totalItems"], scrape_cfg.output_path)
    return scrape_cfg.output_path


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    try:
        if args.remap:
            output = Path(args.output) if args.output else args.remap.with_name(f"{args.remap.stem}_processed.json")
            JsonDocumentWriter(output).write(remap(args))
            log.info("Saved mapped records to %s", output)
        else:
            asyncio.run(async_main(args))
    except ScrapeError as exc:
        log.error("❌ Scrape failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

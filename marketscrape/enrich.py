import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import orjson

from .config import get_settings
from .dedupe import merge_listings
from .images import score_image
from .pool import PoolResult, WorkerPool
from .schema import ListingSummary, NormalizedDetail
from .service import DetailService
from .store import SupabaseListingStore

logger = logging.getLogger(__name__)

OUT = Path("data/clean/refreshed.jsonl")


def append_jsonl(path: Path, obj: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "ab") as f:
        f.write(orjson.dumps(obj) + b"\n")


def apply_detail(card: ListingSummary, detail: NormalizedDetail) -> ListingSummary:
    """Upgrade a search card with what the detail page gave us."""
    update = {}
    hero = detail.hero_image
    if hero and (not card.image or score_image(hero) > score_image(card.image)):
        update["image"] = hero
    if not card.price_raw and detail.price_text:
        update["price_raw"] = detail.price_text
    if not card.moq_text and detail.moq_text:
        update["moq_text"] = detail.moq_text
    if not card.orders_raw and detail.sold_count:
        update["orders_raw"] = f"{detail.sold_count} sold"
    if not card.store_name and detail.supplier and detail.supplier.name:
        update["store_name"] = detail.supplier.name
    if not card.title and detail.title:
        update["title"] = detail.title
    return card.model_copy(update=update) if update else card


async def enrich_listings(
    service: DetailService,
    listings: Iterable[ListingSummary],
    concurrency: Optional[int] = None,
) -> List[ListingSummary]:
    """
    Deduplicate a page of search cards and enrich each with its detail page.

    Output follows the order of the deduplicated input. A card whose detail
    lookup fails comes back unchanged.
    """
    cards = merge_listings(listings)
    if not cards:
        return []

    async def one(card: ListingSummary) -> ListingSummary:
        detail = await service.get_detail(card.url, card.fallback())
        return apply_detail(card, detail)

    async with WorkerPool(one, concurrency=concurrency or get_settings().concurrency) as pool:
        results = await pool.run(cards)

    by_url: Dict[str, ListingSummary] = {r.item.url: r.value for r in results if r.ok}
    return [by_url.get(c.url, c) for c in cards]


async def refresh_listings(
    service: DetailService,
    listing_ids: Sequence[str],
    concurrency: Optional[int] = None,
) -> List[PoolResult]:
    """Force-refresh stored listings by id; results arrive in completion order."""
    async with WorkerPool(service.refresh_listing, concurrency=concurrency or get_settings().concurrency) as pool:
        return await pool.run(listing_ids)


async def main(listing_ids: List[str]):
    print("[INIT] Starting detail refresh")
    if not listing_ids:
        print("[INIT] No listing ids given. Exiting.")
        return

    service = DetailService(store=SupabaseListingStore())
    print(f"[INIT] Refreshing {len(listing_ids)} listings, concurrency {get_settings().concurrency}")

    ok = 0
    for res in await refresh_listings(service, listing_ids):
        if res.ok:
            ok += 1
            d = res.value
            print(f"[JOB] OK   → {res.item} | {d.title} | {d.price_text} | tiers={len(d.price_tiers)}")
            append_jsonl(OUT, {"listing_id": res.item, "detail": d.model_dump(mode="json")})
        else:
            print(f"[JOB] ERR  → {res.item} | {type(res.error).__name__}: {res.error}")

    print(f"[DONE] Refreshed {ok}/{len(listing_ids)} listings.")


if __name__ == "__main__":
    #   python -m marketscrape.enrich <listing_id> [<listing_id> ...]
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(sys.argv[1:]))

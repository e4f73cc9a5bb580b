"""
Wildberries API Client
Talks to the seller statistics API (orders, sales, stocks, settlement reports)
and the advertising API (campaign list + full stats).

Three retrieval strategies live here:
  - single-shot: one GET returns the whole window (orders, sales, stocks, campaign list)
  - cursor: settlement report pages keyed by the last line's rrd_id
  - list-then-batch: campaign ids first, then stats in batches of 100 ids
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, AsyncIterator, Optional

import httpx

from app.config import Settings, get_settings
from app.schemas import CampaignRecord
from app.utils import chunk, unique_ints

logger = logging.getLogger(__name__)

BODY_SNIPPET_LIMIT = 500


# ── Errors ─────────────────────────────────────────────────────────────

class MarketplaceAPIError(Exception):
    """Base class for marketplace API failures."""
    pass


class FetchFailure(MarketplaceAPIError):
    """A call that failed for good. ``status`` is None for transport errors."""

    def __init__(self, status: Optional[int], body_snippet: str = ""):
        self.status = status
        self.body_snippet = body_snippet[:BODY_SNIPPET_LIMIT]
        label = f"HTTP {status}" if status is not None else "Transport error"
        super().__init__(f"{label}: {self.body_snippet}")


class TransientHttpError(FetchFailure):
    """429 / 5xx that was still failing after the retry budget was spent."""
    pass


class MalformedResponse(MarketplaceAPIError):
    """Payload shape the caller cannot work with (or a cursor that does not advance)."""
    pass


class PartialBatchFailure(MarketplaceAPIError):
    """One advertising stats batch failed; the rest of the phase carries on."""

    def __init__(self, campaign_ids: list[int], cause: Exception):
        self.campaign_ids = campaign_ids
        self.cause = cause
        super().__init__(f"Stats batch of {len(campaign_ids)} campaigns skipped: {cause}")


def _is_transient(status: int) -> bool:
    return status == 429 or status >= 500


async def fetch_with_retry(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 1,
    backoff_seconds: float = 1.0,
    **kwargs,
) -> httpx.Response:
    """
    Perform a request, retrying 429/5xx after a fixed pause while retries remain.
    Any other non-2xx status, or an exhausted budget, raises FetchFailure.
    """
    retries_left = max_retries
    while True:
        try:
            response = await http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise FetchFailure(None, str(e)) from e

        if _is_transient(response.status_code):
            if retries_left > 0:
                retries_left -= 1
                logger.warning(
                    f"{method} {url} returned {response.status_code}, "
                    f"retrying in {backoff_seconds}s ({retries_left} retries left)"
                )
                await asyncio.sleep(backoff_seconds)
                continue
            raise TransientHttpError(response.status_code, response.text)

        if not response.is_success:
            raise FetchFailure(response.status_code, response.text)
        return response


def _json_or_none(response: httpx.Response) -> Any:
    """Decode a JSON body; an empty body (e.g. 204) decodes to None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponse(f"Response is not JSON: {response.text[:BODY_SNIPPET_LIMIT]}") from e


def sum_campaign_stats(stat: dict) -> tuple[int, int, float]:
    """Sum (impressions, clicks, spent) over the day × app × product breakdown."""
    impressions = 0
    clicks = 0
    spent = 0.0
    for day in stat.get("days") or []:
        if not isinstance(day, dict):
            continue
        for app in day.get("apps") or []:
            if not isinstance(app, dict):
                continue
            for nm in app.get("nm") or []:
                if not isinstance(nm, dict):
                    continue
                impressions += int(nm.get("views") or 0)
                clicks += int(nm.get("clicks") or 0)
                spent += float(nm.get("sum") or 0)
    return impressions, clicks, spent


@dataclass
class CampaignStatsResult:
    campaigns: list[CampaignRecord] = field(default_factory=list)
    failures: list[PartialBatchFailure] = field(default_factory=list)
    batches: int = 0


class WildberriesClient:
    """
    One instance per seller account. The API key goes into the Authorization
    header verbatim (no Bearer prefix).
    """

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
        self._headers = {"Authorization": api_key}

    async def __aenter__(self) -> "WildberriesClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        response = await fetch_with_retry(
            self._http,
            method,
            url,
            max_retries=self.settings.http_max_retries,
            backoff_seconds=self.settings.http_retry_backoff_seconds,
            headers=headers,
            **kwargs,
        )
        return _json_or_none(response)

    # ── Single-shot endpoints ────────────────────────────────────────

    async def _single_shot(self, path: str, date_from: date) -> list[dict]:
        url = f"{self.settings.statistics_api_url}{path}"
        try:
            data = await self._request("GET", url, params={"dateFrom": f"{date_from.isoformat()}T00:00:00"})
        except MalformedResponse as e:
            logger.warning(f"{path}: {e}; treating as empty")
            return []
        if not isinstance(data, list):
            if data is not None:
                logger.warning(f"{path}: expected a JSON array, got {type(data).__name__}; treating as empty")
            return []
        return [row for row in data if isinstance(row, dict)]

    async def fetch_orders(self, date_from: date) -> list[dict]:
        return await self._single_shot("/api/v1/supplier/orders", date_from)

    async def fetch_sales(self, date_from: date) -> list[dict]:
        return await self._single_shot("/api/v1/supplier/sales", date_from)

    async def fetch_stocks(self, date_from: date) -> list[dict]:
        return await self._single_shot("/api/v1/supplier/stocks", date_from)

    # ── Cursor pagination (settlement reports) ───────────────────────

    async def iter_report_pages(self, date_from: date, date_to: date) -> AsyncIterator[list[dict]]:
        """
        Yield report pages until a short or empty page. The cursor is the last
        line's rrd_id and must strictly increase; a stalled cursor is an error.
        """
        url = f"{self.settings.statistics_api_url}/api/v5/supplier/reportDetailByPeriod"
        limit = self.settings.report_page_size
        rrdid = 0
        page_no = 0

        while True:
            data = await self._request("GET", url, params={
                "dateFrom": date_from.isoformat(),
                "dateTo": date_to.isoformat(),
                "limit": limit,
                "rrdid": rrdid,
            })
            if data is None:
                break
            if not isinstance(data, list):
                raise MalformedResponse(
                    f"reportDetailByPeriod returned {type(data).__name__} instead of an array"
                )
            if not data:
                break

            page_no += 1
            logger.info(f"reportDetailByPeriod page {page_no}: {len(data)} lines (rrdid={rrdid})")
            yield data

            if len(data) < limit:
                break
            last = data[-1] if isinstance(data[-1], dict) else {}
            next_rrdid = int(last.get("rrd_id") or 0)
            if next_rrdid <= rrdid:
                raise MalformedResponse(
                    f"reportDetailByPeriod cursor did not advance (rrdid {rrdid} -> {next_rrdid})"
                )
            rrdid = next_rrdid

    # ── Advertising: list, then stats in batches ─────────────────────

    async def fetch_campaign_list(self) -> list[dict]:
        url = f"{self.settings.advert_api_url}/adv/v1/promotion/adverts"
        data = await self._request("GET", url, params={"status": self.settings.advert_status_list})
        if not isinstance(data, list):
            return []

        adverts = []
        for advert in data:
            if not isinstance(advert, dict) or advert.get("advertId") is None:
                continue
            try:
                advert["advertId"] = int(advert["advertId"])
            except (TypeError, ValueError):
                logger.warning(f"Skipping campaign with non-numeric advertId {advert['advertId']!r}")
                continue
            adverts.append(advert)
        return adverts

    async def fetch_campaign_stats(self, campaign_ids: list[int]) -> list[dict]:
        """Full stats for up to 100 campaign ids (POST, JSON array body)."""
        url = f"{self.settings.advert_api_url}/adv/v2/fullstats"
        data = await self._request("POST", url, json=campaign_ids)
        if not isinstance(data, list):
            raise MalformedResponse(f"fullstats returned {type(data).__name__} instead of an array")
        return [s for s in data if isinstance(s, dict)]

    async def fetch_campaigns(self) -> CampaignStatsResult:
        """
        Campaign list plus lifetime totals. A failing stats batch is recorded
        as a PartialBatchFailure and skipped.
        """
        adverts = await self.fetch_campaign_list()
        by_id = {a["advertId"]: a for a in adverts}
        ids = unique_ints(a["advertId"] for a in adverts)

        result = CampaignStatsResult()
        for id_batch in chunk(ids, self.settings.advert_stats_batch_size):
            result.batches += 1
            try:
                stats = await self.fetch_campaign_stats(id_batch)
            except MarketplaceAPIError as e:
                failure = PartialBatchFailure(id_batch, e)
                logger.warning(str(failure))
                result.failures.append(failure)
                continue

            for stat in stats:
                if stat.get("advertId") is None:
                    continue
                campaign_id = int(stat["advertId"])
                advert = by_id.get(campaign_id, {})
                impressions, clicks, spent = sum_campaign_stats(stat)
                result.campaigns.append(CampaignRecord(
                    campaign_id=campaign_id,
                    name=advert.get("name") or f"Campaign {campaign_id}",
                    budget=advert.get("dailyBudget") or 0,
                    spent=spent,
                    impressions=impressions,
                    clicks=clicks,
                ))
        return result


def create_wb_client(api_key: str, settings: Optional[Settings] = None) -> WildberriesClient:
    """Factory function to create a client instance."""
    return WildberriesClient(api_key=api_key, settings=settings)

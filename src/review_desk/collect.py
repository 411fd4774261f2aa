"""
Marketplace Client Adapters
Fetch provider-shaped product reviews and map them onto IntermediateRecord.
Adapters never classify or deduplicate; that is the importer's job.

Providers:
- Amazon via Axesso (RapidAPI) or Apify (junglee~amazon-reviews-scraper)
- Walmart via SerpAPI (walmart_product / walmart_product_reviews engines)
"""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple, Type

import requests
from pydantic import BaseModel, ValidationError as SchemaError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from . import config
from .schemas import (
    ApifyReview, ApifyRun, AxessoReview, AxessoReviewsResponse,
    IntermediateRecord, WalmartReview,
)
from .utils import (
    AuthenticationError, MarketplaceAPIError, RateLimitError, ValidationError,
)

logger = logging.getLogger(__name__)

_ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.I),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.I),
    re.compile(r"/product/([A-Z0-9]{10})", re.I),
    re.compile(r"/ASIN/([A-Z0-9]{10})", re.I),
]
_WALMART_ID_RX = re.compile(r"/ip/[^/]+/([A-Za-z0-9]+)")
_AMAZON_DOMAINS = [
    "amazon.com.au", "amazon.com.mx", "amazon.co.uk", "amazon.co.jp",
    "amazon.ca", "amazon.de", "amazon.fr", "amazon.es", "amazon.it", "amazon.in",
]
TITLE_SNIPPET_CHARS = 60


# =========================
# Identifier Helpers
# =========================
def extract_asin(url_or_asin: str) -> str:
    """Pull the 10-character ASIN out of an Amazon URL (ASINs pass through)"""
    value = (url_or_asin or "").strip()
    if "/" not in value:
        return value
    for pattern in _ASIN_PATTERNS:
        m = pattern.search(value)
        if m:
            return m.group(1)
    return value


def detect_amazon_domain(url_or_asin: str) -> str:
    for domain in _AMAZON_DOMAINS:
        if domain in (url_or_asin or ""):
            return domain
    return "amazon.com"


def extract_walmart_product_id(url_or_id: str) -> Optional[str]:
    """
    Walmart product id from https://www.walmart.com/ip/<slug>/<id>
    A bare alphanumeric id is returned as is.
    """
    value = (url_or_id or "").strip()
    m = _WALMART_ID_RX.search(value)
    if m:
        return m.group(1)
    if value.isalnum():
        return value
    return None


def title_from_content(content: Optional[str]) -> Optional[str]:
    """Short title for providers that return untitled reviews"""
    if not content:
        return None
    text = " ".join(content.split())
    if len(text) <= TITLE_SNIPPET_CHARS:
        return text
    return text[:TITLE_SNIPPET_CHARS].rsplit(" ", 1)[0] + "..."


@dataclass
class FetchResult:
    """Reviews fetched for one product"""
    provider: str
    marketplace: str
    product_id: str
    product_name: Optional[str] = None
    records: List[IntermediateRecord] = field(default_factory=list)
    malformed: int = 0


# =========================
# Base Client
# =========================
class MarketplaceClient:
    """
    Shared HTTP plumbing: credential check, status-code mapping and
    exponential-backoff retries on 429
    """
    provider = ""
    marketplace = ""
    key_setting = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        debug: bool = False
    ):
        self.api_key = api_key or getattr(config, self.key_setting, None)
        self.session = session or requests.Session()
        self.timeout = config.MARKETPLACE_CONFIG["timeout"]
        self.debug = debug

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise AuthenticationError(
                f"{self.provider} is not configured. Set {self.key_setting}."
            )
        return self.api_key

    @retry(
        reraise=True,
        stop=stop_after_attempt(config.MARKETPLACE_CONFIG["max_retries"]),
        wait=wait_exponential(
            multiplier=1,
            min=config.MARKETPLACE_CONFIG["retry_min_wait"],
            max=config.MARKETPLACE_CONFIG["retry_max_wait"]
        ),
        retry=retry_if_exception_type(RateLimitError),
    )
    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Make a provider request with retry logic

        Raises:
            AuthenticationError: If 401/403
            RateLimitError: If 429 (will retry)
            MarketplaceAPIError: Transport failures and other error statuses
        """
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{self.provider} request failed: {e}")
            raise MarketplaceAPIError(f"{self.provider} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{self.provider} authentication failed ({response.status_code}). "
                f"Verify {self.key_setting}."
            )
        if response.status_code == 429:
            logger.warning(f"{self.provider} rate limit hit, will retry...")
            raise RateLimitError(f"{self.provider} 429: Rate limit exceeded")
        if response.status_code >= 400:
            detail = data.get("error") if isinstance(data, dict) else None
            raise MarketplaceAPIError(
                f"{self.provider} error ({response.status_code}): {detail or response.text[:200]}"
            )

        if self.debug:
            logger.debug(f"{self.provider} request successful: {url}")
        return data

    @staticmethod
    def _validate_items(
        items: List[Any],
        schema: Type[BaseModel]
    ) -> Tuple[List[BaseModel], int]:
        """Validate raw provider items; bad ones are counted, not propagated"""
        valid = []
        malformed = 0
        for i, item in enumerate(items or []):
            try:
                valid.append(schema.model_validate(item))
            except SchemaError as e:
                malformed += 1
                logger.warning(f"Malformed {schema.__name__} #{i}: {e.errors()[0].get('msg')}")
        return valid, malformed

    def fetch_reviews(self, product: str, full_sync: bool = False) -> FetchResult:
        raise NotImplementedError


# =========================
# Amazon: Axesso
# =========================
class AxessoClient(MarketplaceClient):
    """Amazon reviews through the Axesso data service on RapidAPI"""
    provider = "Axesso"
    marketplace = "Amazon"
    key_setting = "AXESSO_API_KEY"

    def _get(self, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        key = self._require_key()
        return self._request(
            "GET",
            config.MARKETPLACE_CONFIG["axesso_base_url"] + endpoint,
            params=params,
            headers={
                "X-RapidAPI-Key": key,
                "X-RapidAPI-Host": config.MARKETPLACE_CONFIG["axesso_host"],
            },
        )

    def fetch_reviews(self, product: str, full_sync: bool = False) -> FetchResult:
        """
        Fetch recent reviews; falls back to the product lookup endpoint when
        the dedicated reviews endpoint fails or returns nothing
        """
        asin = extract_asin(product)
        url = product if product.startswith("http") else f"https://www.amazon.com/dp/{asin}"

        payload: Dict[str, Any] = {}
        try:
            payload = self._get("/amz/amazon-lookup-reviews", {"url": url, "sortBy": "recent"})
        except AuthenticationError:
            raise
        except MarketplaceAPIError as e:
            logger.info(f"Reviews endpoint failed, falling back to product lookup: {e}")

        if not isinstance(payload, dict) or not payload.get("reviews"):
            payload = self._get("/amz/amazon-lookup-product", {"url": url})

        try:
            response = AxessoReviewsResponse.model_validate(payload)
        except SchemaError as e:
            raise MarketplaceAPIError(f"Unexpected Axesso response: {e}") from e

        reviews, malformed = self._validate_items(response.reviews, AxessoReview)
        result = FetchResult(
            provider=self.provider,
            marketplace=self.marketplace,
            product_id=asin,
            product_name=response.product_title,
            malformed=malformed,
        )
        for review in reviews:
            result.records.append(IntermediateRecord(
                title=review.title or title_from_content(review.text),
                content=review.text,
                customer_name=review.user_name or "Amazon Customer",
                rating=review.rating,
                created_at=review.date,
                external_review_id=review.review_id,
                product_id=asin,
                product_name=response.product_title,
                asin=asin,
            ))

        logger.info(f"Axesso: fetched {len(result.records)} reviews for ASIN {asin}")
        return result


# =========================
# Amazon: Apify
# =========================
class ApifyClient(MarketplaceClient):
    """Amazon reviews through the Apify actor (start run, poll, read dataset)"""
    provider = "Apify"
    marketplace = "Amazon"
    key_setting = "APIFY_API_TOKEN"

    def __init__(self, *args, sleep=time.sleep, clock=time.monotonic, **kwargs):
        super().__init__(*args, **kwargs)
        self._sleep = sleep
        self._clock = clock

    def _url(self, path: str) -> str:
        return config.MARKETPLACE_CONFIG["apify_base_url"] + path

    def start_run(self, product_url: str, max_reviews: int) -> ApifyRun:
        token = self._require_key()
        actor = config.MARKETPLACE_CONFIG["apify_amazon_actor"]
        data = self._request(
            "POST",
            self._url(f"/acts/{actor}/runs"),
            params={"token": token},
            json={
                "productUrls": [{"url": product_url}],
                "maxReviews": max_reviews,
                "filterByRatings": ["allStars"],
                "proxyConfiguration": {"useApifyProxy": True},
            },
        )
        try:
            return ApifyRun.model_validate((data or {}).get("data"))
        except SchemaError as e:
            raise MarketplaceAPIError(f"Unexpected Apify run response: {e}") from e

    def wait_for_run(self, run_id: str) -> str:
        """
        Poll a run until it finishes

        Returns:
            The run's default dataset id

        Raises:
            MarketplaceAPIError: Run FAILED/ABORTED or did not finish in time
        """
        token = self._require_key()
        poll = config.MARKETPLACE_CONFIG["apify_poll_seconds"]
        deadline = self._clock() + config.MARKETPLACE_CONFIG["apify_max_wait_seconds"]

        while self._clock() < deadline:
            data = self._request("GET", self._url(f"/actor-runs/{run_id}"), params={"token": token})
            try:
                run = ApifyRun.model_validate((data or {}).get("data"))
            except SchemaError as e:
                raise MarketplaceAPIError(f"Unexpected Apify run status: {e}") from e

            if run.status == "SUCCEEDED":
                return run.default_dataset_id
            if run.status in ("FAILED", "ABORTED"):
                raise MarketplaceAPIError(f"Apify run {run.status}")
            self._sleep(poll)

        raise MarketplaceAPIError("Apify run timed out")

    def fetch_reviews(self, product: str, full_sync: bool = False) -> FetchResult:
        asin = extract_asin(product)
        domain = detect_amazon_domain(product)
        max_reviews = config.MARKETPLACE_CONFIG["apify_max_reviews"]

        run = self.start_run(f"https://www.{domain}/dp/{asin}", max_reviews)
        logger.info(f"Apify: started run {run.id} for ASIN {asin}, waiting for completion...")
        dataset_id = self.wait_for_run(run.id)

        items = self._request(
            "GET",
            self._url(f"/datasets/{dataset_id}/items"),
            params={"token": self._require_key(), "format": "json"},
        )
        if not isinstance(items, list):
            raise MarketplaceAPIError("Apify dataset did not return a list")

        reviews, malformed = self._validate_items(items, ApifyReview)
        result = FetchResult(
            provider=self.provider,
            marketplace=self.marketplace,
            product_id=asin,
            malformed=malformed,
        )
        for review in reviews:
            result.records.append(IntermediateRecord(
                title=review.review_title or title_from_content(review.review_text),
                content=review.review_text,
                customer_name=review.reviewer_name or "Amazon Customer",
                rating=review.rating,
                created_at=review.review_date,
                external_review_id=review.review_id,
                product_id=asin,
                asin=review.asin or asin,
                verified=review.verified,
            ))

        logger.info(f"Apify: fetched {len(result.records)} reviews for ASIN {asin}")
        return result


# =========================
# Walmart: SerpAPI
# =========================
class WalmartClient(MarketplaceClient):
    """Walmart (US) product reviews through SerpAPI"""
    provider = "SerpAPI"
    marketplace = "Walmart"
    key_setting = "SERPAPI_KEY"

    def _search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params, api_key=self._require_key())
        return self._request("GET", config.MARKETPLACE_CONFIG["serpapi_url"], params=params)

    def fetch_reviews(self, product: str, full_sync: bool = False) -> FetchResult:
        """
        Product page first, then paginated review pages while the provider
        reports a next page (up to 10 pages on full sync, 1 otherwise)
        """
        product_id = extract_walmart_product_id(product)
        if not product_id:
            raise ValidationError(
                "Could not extract product ID from URL. Use https://www.walmart.com/ip/<name>/<id>"
            )

        data = self._search({"engine": "walmart_product", "product_id": product_id})
        product_name = (data.get("product_result") or {}).get("title") or "Unknown Product"

        raw_items = list(data.get("reviews") or [])
        if not raw_items or full_sync:
            max_pages = config.MARKETPLACE_CONFIG[
                "walmart_max_pages_full" if full_sync else "walmart_max_pages_quick"
            ]
            page = 1
            while page <= max_pages:
                page_data = self._search({
                    "engine": "walmart_product_reviews",
                    "product_id": product_id,
                    "page": page,
                })
                fetched = page_data.get("reviews") or []
                if not fetched:
                    break
                raw_items.extend(fetched)
                logger.info(f"Walmart page {page}: found {len(fetched)} reviews")
                if not (page_data.get("serpapi_pagination") or {}).get("next"):
                    break
                page += 1

        reviews, malformed = self._validate_items(raw_items, WalmartReview)
        result = FetchResult(
            provider=self.provider,
            marketplace=self.marketplace,
            product_id=product_id,
            product_name=product_name,
            malformed=malformed,
        )

        seen = set()
        for review in reviews:
            author = review.author or "Anonymous"
            marker = (author, review.body)
            if marker in seen:
                continue
            seen.add(marker)
            result.records.append(IntermediateRecord(
                title=review.title or title_from_content(review.body),
                content=review.body,
                customer_name=author,
                rating=review.rating,
                created_at=review.date,
                external_review_id=review.review_id,
                product_id=product_id,
                product_name=product_name,
            ))

        logger.info(f"Walmart: fetched {len(result.records)} reviews for product {product_id}")
        return result


# =========================
# Factory
# =========================
PROVIDERS: Dict[str, Dict[str, Type[MarketplaceClient]]] = {
    "Amazon": {"axesso": AxessoClient, "apify": ApifyClient},
    "Walmart": {"serpapi": WalmartClient},
}


def get_marketplace_client(
    marketplace: str,
    provider: Optional[str] = None,
    **kwargs
) -> MarketplaceClient:
    """
    Pick the adapter for a marketplace

    Without an explicit provider, the first configured one wins (Axesso
    before Apify for Amazon).

    Raises:
        ValidationError: Marketplace has no API adapter, or unknown provider
    """
    options = PROVIDERS.get(marketplace)
    if not options:
        raise ValidationError(
            f"No marketplace API for '{marketplace}'. Supported: {list(PROVIDERS)}"
        )

    if provider:
        cls = options.get(provider.lower())
        if cls is None:
            raise ValidationError(
                f"Unknown provider '{provider}' for {marketplace}. Use one of {list(options)}"
            )
        return cls(**kwargs)

    clients = [cls(**kwargs) for cls in options.values()]
    for client in clients:
        if client.is_configured():
            return client
    return clients[0]


def integration_status() -> Dict[str, bool]:
    """Which marketplace and AI integrations have credentials"""
    return {
        "axesso": bool(config.AXESSO_API_KEY),
        "apify": bool(config.APIFY_API_TOKEN),
        "walmart": bool(config.SERPAPI_KEY),
        "ai": bool(config.OPENROUTER_API_KEY),
    }

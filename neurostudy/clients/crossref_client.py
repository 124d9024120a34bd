import logging
import re

import httpx

from neurostudy.config import settings

logger = logging.getLogger(__name__)

_DOI_PREFIX = re.compile(r"^(doi:|https?://(dx\.)?doi\.org/)", re.IGNORECASE)
# CrossRef abstracts come wrapped in JATS markup
_MARKUP = re.compile(r"<[^>]+>")

NO_ABSTRACT = "Abstract not available from the public API."


def clean_doi(doi: str) -> str:
    return _DOI_PREFIX.sub("", doi.strip())


class CrossRefClient:
    """Look up real paper metadata so DOI prompts are grounded in facts."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.crossref_base_url).rstrip("/")
        self.timeout = timeout or settings.crossref_timeout_seconds
        self._transport = transport

    async def lookup(self, doi: str) -> dict | None:
        """Return ``{"title", "abstract"}`` for *doi*, or ``None`` if unavailable."""
        url = f"{self.base_url}/{clean_doi(doi)}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(url)
            if resp.status_code != 200:
                logger.info("CrossRef has no record for %s (HTTP %d)", doi, resp.status_code)
                return None
            item = resp.json().get("message", {})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch DOI metadata for %s: %s", doi, e)
            return None

        titles = item.get("title") or []
        return {
            "title": titles[0] if titles else "",
            "abstract": _MARKUP.sub("", item.get("abstract") or "").strip() or NO_ABSTRACT,
        }

"""Listing extraction from result-page markup.

The origin has shipped several page layouts over time, so extraction tries a
cascade of strategies from the current layout back to the legacy ones and
stops at the first that yields anything. Listing identity is the listing's
primary image URL, which stays stable across re-sorts and price edits.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from core.errors import BotChallengeError
from models import Listing

logger = logging.getLogger(__name__)

CHALLENGE_TITLES = {"ShieldSquare Captcha"}
IMAGE_HOST = "img.yad2.co.il"
BASE_URL = "https://www.yad2.co.il"


def page_title(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    title = soup.find("title")
    return title.get_text() if title else ""


def is_challenge_page(html: str) -> bool:
    return bool(html) and page_title(html) in CHALLENGE_TITLES


class ListingParser:
    """Turns result-page markup into an ordered list of unique listings."""

    def parse(self, html: str) -> List[Listing]:
        if not html:
            raise ValueError("Empty HTML received")

        soup = BeautifulSoup(html, "html.parser")
        title = soup.find("title")
        if title and title.get_text() in CHALLENGE_TITLES:
            raise BotChallengeError(f"Bot detection triggered - {title.get_text()}")

        for strategy in (self._feed_boxes, self._direct_images, self._legacy_feed, self._legacy_alt):
            listings = strategy(soup)
            if listings:
                return self._unique(listings)

        logger.warning("[Parser] No feed items found - page structure may have changed")
        return []

    def extract_identifiers(self, html: str) -> List[str]:
        return [listing.identifier for listing in self.parse(html)]

    def _feed_boxes(self, soup: BeautifulSoup) -> List[Listing]:
        boxes = soup.select('[class*="feedItemBox"]')
        if not boxes:
            return []
        logger.info("[Parser] Found %s feedItemBox elements", len(boxes))
        listings = []
        for box in boxes:
            img = next((i for i in box.find_all("img") if IMAGE_HOST in (i.get("src") or "")), None)
            if img is None:
                continue
            listings.append(Listing(identifier=img["src"], **self._display_fields(box)))
        return listings

    def _direct_images(self, soup: BeautifulSoup) -> List[Listing]:
        listings = [
            Listing(identifier=img["src"])
            for img in soup.find_all("img")
            if IMAGE_HOST in (img.get("src") or "") and "logo" not in img["src"]
        ]
        if listings:
            logger.info("[Parser] Found %s images via direct search", len(listings))
        return listings

    def _legacy_feed(self, soup: BeautifulSoup) -> List[Listing]:
        listings = []
        for pic in soup.select(".feeditem .pic"):
            img = pic.find("img")
            if img and img.get("src"):
                listings.append(Listing(identifier=img["src"]))
        if listings:
            logger.info("[Parser] Found %s legacy feeditem elements", len(listings))
        return listings

    def _legacy_alt(self, soup: BeautifulSoup) -> List[Listing]:
        listings = [
            Listing(identifier=img["src"])
            for img in soup.select('[class*="feeditem"] img')
            if img.get("src") and "placeholder" not in img["src"]
        ]
        if listings:
            logger.info("[Parser] Found %s alternative feeditem images", len(listings))
        return listings

    @staticmethod
    def _display_fields(box: Tag) -> Dict[str, Optional[str]]:
        def text_of(selector: str) -> Optional[str]:
            node = box.select_one(selector)
            return node.get_text(" ", strip=True) if node else None

        anchor = box.find("a", href=True)
        return {
            "title": text_of('[class*="heading"], [class*="title"]'),
            "price": text_of('[class*="price"]'),
            "address": text_of('[class*="subtitle"], [class*="address"]'),
            "link": urljoin(BASE_URL, anchor["href"]) if anchor else None,
        }

    @staticmethod
    def _unique(listings: List[Listing]) -> List[Listing]:
        seen = set()
        result = []
        for listing in listings:
            if listing.identifier in seen:
                continue
            seen.add(listing.identifier)
            result.append(listing)
        return result


def format_listing(listing: Listing) -> str:
    lines = [
        value
        for value in (listing.title, listing.address, listing.price, listing.link or listing.identifier)
        if value
    ]
    return "\n".join(lines)

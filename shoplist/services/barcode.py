"""Barcode lookup against Open Food Facts."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from shoplist.config import get_settings


@dataclass
class BarcodeProduct:
    """What a barcode resolved to. Either field may be missing."""
    name: Optional[str] = None
    image_url: Optional[str] = None


class BarcodeResolver(ABC):
    @abstractmethod
    async def lookup(self, barcode: str) -> Optional[BarcodeProduct]:
        """Resolve a barcode, or None on any failure."""


class OpenFoodFactsResolver(BarcodeResolver):
    """
    Looks products up in the Open Food Facts database.

    Any failure (HTTP error, timeout, unknown product, malformed payload)
    returns None; the caller then uses the raw barcode as the item name.
    """

    NAME_FIELDS = ("product_name", "product_name_en", "generic_name", "abbreviated_product_name")
    IMAGE_FIELDS = ("image_front_url", "image_url", "image_small_url")

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.barcode_lookup_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.barcode_timeout_seconds
        self._transport = transport

    async def lookup(self, barcode: str) -> Optional[BarcodeProduct]:
        barcode = (barcode or "").strip()
        if not barcode:
            return None

        url = f"{self.base_url}/{barcode}.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers={"User-Agent": "shoplist-sync/1.0"})
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"⚠️ Barcode lookup failed for {barcode}: {e}")
            return None

        return self._parse(barcode, data)

    def _parse(self, barcode: str, data) -> Optional[BarcodeProduct]:
        if not isinstance(data, dict) or data.get("status") != 1:
            print(f"🔍 Barcode {barcode} not found")
            return None
        product = data.get("product")
        if not isinstance(product, dict):
            return None

        name = next((product[f].strip() for f in self.NAME_FIELDS
                     if isinstance(product.get(f), str) and product[f].strip()), None)
        image_url = next((product[f] for f in self.IMAGE_FIELDS
                          if isinstance(product.get(f), str) and product[f]), None)
        if not name and not image_url:
            return None

        print(f"✅ Barcode {barcode} → {name or '(no name)'}")
        return BarcodeProduct(name=name, image_url=image_url)

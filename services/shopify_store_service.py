import os
import logging
from typing import Dict, List, Optional

import requests

from utils.errors import NotAShopifyStore, StoreUnreachable
from utils.helpers import DataHelpers, ValidationHelpers

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 15

class ShopifyStoreService:
    """Connects to a storefront through its public /products.json feed"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or float(os.getenv('STORE_FETCH_TIMEOUT', DEFAULT_FETCH_TIMEOUT))

    @staticmethod
    def _base_url(store_url: str) -> str:
        return store_url.rstrip('/')

    @staticmethod
    def has_available_variant(product: Dict) -> bool:
        """A product is in stock if any variant is available or has inventory"""
        variants = product.get("variants") or []
        if not variants:
            return False

        for variant in variants:
            if variant.get("available") is True:
                return True
            quantity = variant.get("inventory_quantity")
            if isinstance(quantity, (int, float)) and quantity > 0:
                return True
        return False

    def normalize_product(self, product: Dict, store_url: str) -> Dict:
        """Map a raw feed product to the widget's product card shape"""
        images = product.get("images") or []
        variants = product.get("variants") or []
        first_variant = variants[0] if variants else {}

        return {
            "name": product.get("title", ""),
            "image": images[0].get("src", "") if images else "",
            "description": DataHelpers.strip_html(product.get("body_html") or ""),
            "url": f"{self._base_url(store_url)}/products/{product.get('handle', '')}",
            "salePrice": first_variant.get("compare_at_price") or "",
            "actualPrice": first_variant.get("price") or "",
            "category": product.get("product_type") or "",
            "inStock": True
        }

    def fetch_products(self, store_url: str) -> List[Dict]:
        """
        Fetch and filter the store's product feed

        Args:
            store_url: Storefront URL, e.g. https://mystore.myshopify.com

        Returns:
            In-stock products in normalized form

        Raises:
            NotAShopifyStore: Feed did not answer with JSON
            StoreUnreachable: Network failure or non-2xx status
        """
        if not ValidationHelpers.validate_url(store_url):
            raise StoreUnreachable(
                "Invalid store URL. Please provide a full URL such as https://mystore.myshopify.com",
                store_url=store_url
            )

        products_url = f"{self._base_url(store_url)}/products.json"
        logger.info(f"🛍️ Fetching products from {products_url}")

        try:
            response = requests.get(products_url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"🛍️ Error fetching products from {products_url}: {e}")
            raise StoreUnreachable(
                "Failed to connect to this store. Please verify it's a valid Shopify store URL.",
                store_url=store_url
            ) from e

        if not response.ok:
            logger.warning(f"🛍️ Failed to fetch products from {products_url}: {response.status_code}")
            raise StoreUnreachable(store_url=store_url)

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.warning(f"🛍️ {store_url} is not a Shopify store (content-type: {content_type})")
            raise NotAShopifyStore(store_url)

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"🛍️ Invalid JSON from {products_url}: {e}")
            raise NotAShopifyStore(store_url) from e

        raw_products = data.get("products") if isinstance(data, dict) else None
        if not isinstance(raw_products, list):
            logger.warning(f"🛍️ No products array in feed from {products_url}")
            return []

        products = []
        for i, product in enumerate(raw_products):
            if not isinstance(product, dict) or not self.has_available_variant(product):
                continue
            try:
                products.append(self.normalize_product(product, store_url))
            except (AttributeError, TypeError) as e:
                logger.error(f"🛍️ Error transforming product {i}: {e}")
                continue

        total = len(raw_products)
        logger.info(
            f"🛍️ Total products: {total}, In-stock products: {len(products)}, "
            f"Filtered out: {total - len(products)}"
        )
        return products

    def connect(self, store_url: str) -> Dict:
        """Validate the store and return its info with products"""
        products = self.fetch_products(store_url)
        store_name = DataHelpers.extract_store_name(store_url)

        store_info = {
            "url": store_url,
            "name": store_name,
            "description": f"Shopify store: {store_name}",
            "products": products
        }

        logger.info(f"Store set to: {store_name} (Shopify store with {len(products)} products)")
        return store_info

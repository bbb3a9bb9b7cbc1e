"""File-based product catalog."""

import json
from pathlib import Path

import yaml

from .models import Product


class ProductCatalog:
    """Products keyed by id, in file order."""

    def __init__(self, products: list[Product]):
        self._products = {p.id: p for p in products}

    def __len__(self) -> int:
        return len(self._products)

    def get(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise KeyError(f"Unknown product id: {product_id}") from None

    def all(self) -> list[Product]:
        return list(self._products.values())

    def select(self, product_ids: list[str] | None) -> list[Product]:
        """Products matching ``product_ids`` in the given order, or all when None."""
        if product_ids is None:
            return self.all()
        return [self.get(pid) for pid in product_ids]


def load_catalog(path: Path) -> ProductCatalog:
    """Load products from a YAML or JSON file.

    The file holds either a list of products or ``{"products": [...]}``.
    Relative image paths are resolved against the catalog's directory.
    """
    path = Path(path)
    with open(path) as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("products", [])

    products = []
    for item in data or []:
        item = {**item, "id": str(item["id"])}
        image = str(item["image"])
        if not image.startswith(("http://", "https://")) and not Path(image).is_absolute():
            image = str(path.parent / image)
        item["image"] = image
        products.append(Product(**item))
    return ProductCatalog(products)

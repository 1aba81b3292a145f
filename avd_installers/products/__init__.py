"""Built-in product definitions.

Each product contributes config defaults (merged underneath the YAML
``products.<id>`` section) and a hook that turns its config into the ordered
``msiexec`` property list. Products that appear only in YAML use the
configured ``installer_options`` unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from avd_installers.foundation.config_io import deep_merge
from avd_installers.framework.config import ProductConfig


def configured_installer_options(product: ProductConfig) -> list[tuple[str, str]]:
    return list(product.installer_options)


@dataclass(frozen=True)
class ProductRef:
    id: str
    doc: str
    defaults: Mapping[str, Any] = field(default_factory=dict)
    installer_options: Callable[[ProductConfig], list[tuple[str, str]]] = configured_installer_options

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("ProductRef.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())


@dataclass(frozen=True)
class ProductCatalog:
    _by_id: dict[str, ProductRef]

    @classmethod
    def from_refs(cls, refs: Iterable[ProductRef]) -> "ProductCatalog":
        entries: dict[str, ProductRef] = {}
        for ref in refs:
            if ref.id in entries:
                raise ValueError(f"Duplicate product id: {ref.id}")
            entries[ref.id] = ref
        return cls(_by_id=entries)

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_id))

    def get(self, product_id: str) -> ProductRef | None:
        return self._by_id.get((product_id or "").strip())

    def installer_options(self, product: ProductConfig) -> list[tuple[str, str]]:
        ref = self.get(product.id)
        if ref is None:
            return configured_installer_options(product)
        return ref.installer_options(product)

    def apply_defaults(self, cfg: Mapping[str, Any]) -> dict[str, Any]:
        """Return ``cfg`` with every built-in product's defaults merged underneath it."""
        products = cfg.get("products")
        if products is not None and not isinstance(products, Mapping):
            raise ValueError("Invalid config type for products: expected mapping")

        merged_products: dict[str, Any] = {}
        for product_id, ref in self._by_id.items():
            merged_products[product_id] = dict(ref.defaults)
        # An empty `products.<id>:` entry means "use the defaults".
        configured = {key: ({} if value is None else value) for key, value in (products or {}).items()}
        merged_products = deep_merge(merged_products, configured, path="products")

        merged = dict(cfg)
        merged["products"] = merged_products
        return merged


def _builtin_refs() -> list[ProductRef]:
    from avd_installers.products.seven_zip import SEVEN_ZIP
    from avd_installers.products.zoom_vdi import ZOOM_VDI

    return [SEVEN_ZIP, ZOOM_VDI]


BUILTIN_PRODUCTS = ProductCatalog.from_refs(_builtin_refs())

__all__ = [
    "BUILTIN_PRODUCTS",
    "ProductCatalog",
    "ProductRef",
    "configured_installer_options",
]

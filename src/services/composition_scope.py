"""
Composition keys and child references.

A composition item's parent key is either a plain product SKU or the key of
one variation combination of a composite+variable product::

    DINING-SET-001                 ProductScope("DINING-SET-001")
    DINING-SET-001#<variationId>   VariationScope("DINING-SET-001", "<variationId>")

A child SKU may also point at one variation combination of a variable
product. Accepted and rejected encodings:

    CHAIR-001#<variationId>        variation reference (hash form)
    CHAIR-001-VAR-<variationId>    variation reference (hyphen-marker form)
    CHAIR-001:<variationId>        legacy colon form, always rejected
    CHAIR-001                      plain product

Every place that reads or writes a composition key goes through
``parse_scope``/``serialize_scope`` and ``parse_child_reference``.
"""

from dataclasses import dataclass
from typing import Optional, Union

from src.utils.constants import (
    LEGACY_VARIATION_SEPARATOR,
    VARIATION_SCOPE_SEPARATOR,
    VARIATION_SKU_MARKER,
)

SCOPE_PRODUCT = "product"
SCOPE_VARIATION = "variation"

# Child reference kinds. Parsing alone yields PRODUCT, VARIATION or
# REJECTED_LEGACY; resolving a PRODUCT against the catalog yields SIMPLE,
# COMPOSITE or VARIABLE.
REF_PRODUCT = "product"
REF_SIMPLE = "simple"
REF_COMPOSITE = "composite"
REF_VARIABLE = "variable"
REF_VARIATION = "variation"
REF_REJECTED_LEGACY = "rejected-legacy"

ENCODING_PLAIN = "plain"
ENCODING_HASH = "hash"
ENCODING_MARKER = "marker"
ENCODING_LEGACY = "legacy"


@dataclass(frozen=True)
class ProductScope:
    """Composition owned directly by a product."""

    sku: str
    kind: str = SCOPE_PRODUCT

    @property
    def product_sku(self) -> str:
        return self.sku


@dataclass(frozen=True)
class VariationScope:
    """Composition owned by one variation combination of a product."""

    product_sku: str
    variation_id: str
    kind: str = SCOPE_VARIATION


CompositionScope = Union[ProductScope, VariationScope]


def product_scope(sku: str) -> ProductScope:
    return ProductScope(sku)


def variation_scope(product_sku: str, variation_id: str) -> VariationScope:
    return VariationScope(product_sku, variation_id)


def serialize_scope(scope: CompositionScope) -> str:
    """
    Render a scope as the parent key stored on composition items.

    Args:
        scope: ProductScope or VariationScope

    Returns:
        ``sku`` or ``sku#variationId``
    """
    if isinstance(scope, VariationScope):
        return f"{scope.product_sku}{VARIATION_SCOPE_SEPARATOR}{scope.variation_id}"
    return scope.sku


def parse_scope(key: str) -> CompositionScope:
    """
    Parse a stored parent key.

    Args:
        key: ``sku`` or ``sku#variationId``

    Returns:
        The matching CompositionScope
    """
    product_sku, separator, variation_id = key.partition(VARIATION_SCOPE_SEPARATOR)
    if separator and product_sku and variation_id:
        return VariationScope(product_sku, variation_id)
    return ProductScope(key)


def as_scope(key_or_scope: Union[str, CompositionScope]) -> CompositionScope:
    """Accept either a stored key or an already parsed scope."""
    if isinstance(key_or_scope, (ProductScope, VariationScope)):
        return key_or_scope
    return parse_scope(key_or_scope)


def as_key(key_or_scope: Union[str, CompositionScope]) -> str:
    """Accept either a stored key or a scope and return the stored key."""
    if isinstance(key_or_scope, (ProductScope, VariationScope)):
        return serialize_scope(key_or_scope)
    return key_or_scope


def scope_prefix(product_sku: str) -> str:
    """Prefix shared by every variation scope key of a product."""
    return f"{product_sku}{VARIATION_SCOPE_SEPARATOR}"


@dataclass(frozen=True)
class ChildReference:
    """
    Parsed (and optionally resolved) composition child SKU.

    Attributes:
        raw: The SKU exactly as given
        kind: One of the REF_* constants
        product_sku: SKU of the product the reference points into
        variation_id: Variation combination id for variation references
        encoding: Which textual form was used (plain, hash, marker, legacy)
    """

    raw: str
    kind: str
    product_sku: str
    variation_id: Optional[str] = None
    encoding: str = ENCODING_PLAIN

    @property
    def is_variation(self) -> bool:
        return self.kind == REF_VARIATION

    @property
    def is_rejected(self) -> bool:
        return self.kind == REF_REJECTED_LEGACY

    def with_kind(self, kind: str) -> "ChildReference":
        return ChildReference(self.raw, kind, self.product_sku, self.variation_id, self.encoding)

    def canonical_sku(self) -> str:
        """Hash-form SKU for variation references, the raw SKU otherwise."""
        if self.is_variation:
            return f"{self.product_sku}{VARIATION_SCOPE_SEPARATOR}{self.variation_id}"
        return self.raw


def parse_child_reference(sku: str) -> ChildReference:
    """
    Parse a composition child SKU without touching storage.

    The hash form wins over the marker form, and any colon marks the legacy
    encoding.

    Args:
        sku: Child SKU as stored on a composition item or entered by a user

    Returns:
        ChildReference with kind PRODUCT, VARIATION or REJECTED_LEGACY
    """
    product_sku, separator, variation_id = sku.partition(VARIATION_SCOPE_SEPARATOR)
    if separator and product_sku and variation_id:
        return ChildReference(sku, REF_VARIATION, product_sku, variation_id, ENCODING_HASH)

    if LEGACY_VARIATION_SEPARATOR in sku:
        product_sku = sku.split(LEGACY_VARIATION_SEPARATOR, 1)[0]
        return ChildReference(sku, REF_REJECTED_LEGACY, product_sku, None, ENCODING_LEGACY)

    if VARIATION_SKU_MARKER in sku:
        product_sku, _, variation_id = sku.rpartition(VARIATION_SKU_MARKER)
        if product_sku and variation_id:
            return ChildReference(sku, REF_VARIATION, product_sku, variation_id, ENCODING_MARKER)

    return ChildReference(sku, REF_PRODUCT, sku)


def base_sku(key: str) -> str:
    """
    Product SKU a parent key or child reference belongs to.

    ``DINING-SET-001#v1`` and ``CHAIR-001-VAR-v1`` map to their product SKU;
    plain SKUs map to themselves.
    """
    return parse_child_reference(key).product_sku

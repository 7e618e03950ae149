"""Product catalog helpers."""

from .classifier import (
    DEFAULT_PRODUCTS,
    MULTIPLE_PRODUCTS_TYPE,
    OTHER_PRODUCT_TYPE,
    Classification,
    ProductClassifier,
    classify_products,
    color_for,
    normalize_product_list,
    size_for,
)

__all__ = [
    "DEFAULT_PRODUCTS",
    "MULTIPLE_PRODUCTS_TYPE",
    "OTHER_PRODUCT_TYPE",
    "Classification",
    "ProductClassifier",
    "classify_products",
    "color_for",
    "normalize_product_list",
    "size_for",
]

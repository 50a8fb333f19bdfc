# 字段显示名（清单 / 徽标 / 提示）

from __future__ import annotations

from typing import Dict, Optional, Sequence

from app.services.content.proposals import get_remaining_proposals


FIELD_LABELS: Dict[str, str] = {
    "title": "Title",
    "description": "Description",
    "short_description": "Short description",
    "sku": "SKU",
    "slug": "URL (slug)",
    "vendor": "Brand",
    "product_type": "Product type",
    "tags": "Tags",
    "image_url": "Main image",
    "images": "Images",
    "seo": "SEO",
    "seo.title": "SEO title",
    "seo.description": "Meta description",
    "meta_title": "SEO title",
    "meta_description": "Meta description",
    "categories": "Categories",
    "regular_price": "Price",
    "sale_price": "Sale price",
    "price": "Price",
    "stock": "Stock",
    "status": "Status",
    "variations": "Variations",
    "weight": "Weight",
    "dimensions": "Dimensions",
}


def get_field_label(field: str) -> str:
    return FIELD_LABELS.get(field) or field


def format_dirty_fields_list(fields: Sequence[str]) -> str:
    """Human-readable summary: ``A``, ``A and B`` or ``A, B and N other(s)``."""
    if not fields:
        return ""
    if len(fields) == 1:
        return get_field_label(fields[0])
    if len(fields) == 2:
        return f"{get_field_label(fields[0])} and {get_field_label(fields[1])}"
    return f"{get_field_label(fields[0])}, {get_field_label(fields[1])} and {len(fields) - 2} other(s)"


def generated_fields_tooltip(draft: Optional[dict], working: Optional[dict]) -> str:
    if not draft:
        return ""
    fields = get_remaining_proposals(draft, working)
    if not fields:
        return ""
    if len(fields) == 1:
        return f"Generated field: {get_field_label(fields[0])}"
    return "Generated fields: " + ", ".join(get_field_label(f) for f in fields)

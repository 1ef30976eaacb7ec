"""Store resource types the bulk editor can target."""
from dataclasses import dataclass
from typing import Dict, Optional

from app.exceptions import ValidationError


@dataclass(frozen=True)
class ObjectTypeInfo:
    name: str
    gid_type: str
    connection: str
    count_field: Optional[str]
    identifier_column: str  # default CSV column when not using raw IDs
    taggable: bool = False


OBJECT_TYPES: Dict[str, ObjectTypeInfo] = {
    "product": ObjectTypeInfo("product", "Product", "products", "productsCount", "Handle", taggable=True),
    "variant": ObjectTypeInfo("variant", "ProductVariant", "productVariants", "productVariantsCount", "Sku"),
    "collection": ObjectTypeInfo("collection", "Collection", "collections", "collectionsCount", "Handle"),
    "customer": ObjectTypeInfo("customer", "Customer", "customers", "customersCount", "Email", taggable=True),
    "order": ObjectTypeInfo("order", "Order", "orders", "ordersCount", "Name", taggable=True),
    "company": ObjectTypeInfo("company", "Company", "companies", "companiesCount", "External_ID"),
    "companyLocation": ObjectTypeInfo("companyLocation", "CompanyLocation", "companyLocations", "companyLocationsCount", "External_ID"),
    "location": ObjectTypeInfo("location", "Location", "locations", "locationsCount", "Name"),
    "page": ObjectTypeInfo("page", "Page", "pages", "pagesCount", "Handle"),
    "blog": ObjectTypeInfo("blog", "Blog", "blogs", "blogsCount", "Handle"),
    "blogPost": ObjectTypeInfo("blogPost", "Article", "articles", "articlesCount", "Handle", taggable=True),
    "article": ObjectTypeInfo("article", "Article", "articles", "articlesCount", "Handle", taggable=True),
    "market": ObjectTypeInfo("market", "Market", "markets", None, "Title"),
}


def get_object_type(name: str) -> ObjectTypeInfo:
    """Look up an object type, raising ValidationError for unknown names."""
    info = OBJECT_TYPES.get(name)
    if info is None:
        raise ValidationError(f"Unsupported resource type: {name}")
    return info

"""Resolve human identifiers (SKU, email, handle, ...) to Shopify GIDs."""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from app.exceptions import NotFoundError, ValidationError
from app.services.object_types import get_object_type

logger = logging.getLogger(__name__)

GID_PATTERN = re.compile(r"^gid://shopify/([^/]+)/\d+$")


@dataclass(frozen=True)
class ResourceRef:
    object_type: str
    id: str


@dataclass(frozen=True)
class LookupStrategy:
    query: str
    build: Callable[[str], str]
    path: Sequence[Any]


def _search(connection: str) -> str:
    return f"""
    query($value: String!) {{
      {connection}(first: 1, query: $value) {{
        edges {{ node {{ id }} }}
      }}
    }}
    """


STRATEGIES = {
    "customer": LookupStrategy(_search("customers"), lambda v: f"email:{v}", ("customers", "edges", 0, "node", "id")),
    "order": LookupStrategy(_search("orders"), lambda v: f"name:{v}", ("orders", "edges", 0, "node", "id")),
    "company": LookupStrategy(_search("companies"), lambda v: f"external_id:{v}", ("companies", "edges", 0, "node", "id")),
    "companyLocation": LookupStrategy(
        _search("companyLocations"), lambda v: f"external_id:{v}", ("companyLocations", "edges", 0, "node", "id")
    ),
    "location": LookupStrategy(_search("locations"), lambda v: f"name:{v}", ("locations", "edges", 0, "node", "id")),
    "page": LookupStrategy(_search("pages"), lambda v: f"handle:{v}", ("pages", "edges", 0, "node", "id")),
    "blog": LookupStrategy(_search("blogs"), lambda v: f"handle:{v}", ("blogs", "edges", 0, "node", "id")),
    "blogPost": LookupStrategy(_search("articles"), lambda v: f"handle:{v}", ("articles", "edges", 0, "node", "id")),
    "article": LookupStrategy(_search("articles"), lambda v: f"handle:{v}", ("articles", "edges", 0, "node", "id")),
    "product": LookupStrategy(
        "query($value: String!) { productByHandle(handle: $value) { id } }",
        lambda v: v,
        ("productByHandle", "id"),
    ),
    "collection": LookupStrategy(
        "query($value: String!) { collectionByHandle(handle: $value) { id } }",
        lambda v: v,
        ("collectionByHandle", "id"),
    ),
    "variant": LookupStrategy(_search("productVariants"), lambda v: f"sku:{v}", ("productVariants", "edges", 0, "node", "id")),
    "market": LookupStrategy(
        "query($value: String!) { catalogs(first: 1, type: MARKET, query: $value) { nodes { id } } }",
        lambda v: f"title:{v}",
        ("catalogs", "nodes", 0, "id"),
    ),
}

# The tag editor identifies products by SKU and tags the parent product
PRODUCT_BY_SKU = LookupStrategy(
    """
    query($value: String!) {
      productVariants(first: 1, query: $value) {
        edges { node { product { id } } }
      }
    }
    """,
    lambda v: f"sku:{v}",
    ("productVariants", "edges", 0, "node", "product", "id"),
)


def _extract(data: Any, path: Sequence[Any]) -> Optional[str]:
    for step in path:
        if data is None:
            return None
        if isinstance(step, int):
            if not isinstance(data, list) or len(data) <= step:
                return None
            data = data[step]
        else:
            data = data.get(step) if isinstance(data, dict) else None
    return data


def gid_type(value: Any) -> Optional[str]:
    """Return the type name embedded in a Shopify GID, or None."""
    if not isinstance(value, str):
        return None
    match = GID_PATTERN.match(value.strip())
    return match.group(1) if match else None


def check_identifier_type(object_type: str, value: str) -> bool:
    """
    Return True when ``value`` is a native GID of the selected type.

    Raises ValidationError when it is a GID of some other type.
    """
    embedded = gid_type(value)
    if embedded is None:
        return False

    expected = get_object_type(object_type).gid_type
    if embedded.lower() != expected.lower():
        raise ValidationError(
            f'CSV contains an ID of type "{embedded}", but "{object_type}" was selected. ID: {value}'
        )
    return True


def resolve(client, object_type: str, value: str, by_sku: bool = False) -> ResourceRef:
    """
    Resolve ``value`` to a ResourceRef.

    Native GIDs of the selected type are returned without a remote call.
    Raises NotFoundError when the lookup has no match.
    """
    value = (value or "").strip()
    if not value:
        raise ValidationError("Empty identifier")

    if check_identifier_type(object_type, value):
        return ResourceRef(object_type, value)

    if by_sku and object_type == "product":
        strategy = PRODUCT_BY_SKU
    else:
        strategy = STRATEGIES.get(object_type)
    if strategy is None:
        raise ValidationError(f"Unsupported resource type: {object_type}")

    data = client.execute(strategy.query, {"value": strategy.build(value)})
    resource_id = _extract(data, strategy.path)
    if not resource_id:
        logger.info("No %s found for %s", object_type, value)
        raise NotFoundError(f"No {object_type} found for {value}")

    return ResourceRef(object_type, resource_id)

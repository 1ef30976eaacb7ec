"""Shopify service layer - handles Shopify Admin GraphQL operations."""
import logging
import requests
from typing import Optional, List, Dict, Any

from app.config import settings
from app.exceptions import RemoteMutationError, TransportError
from app.services.object_types import get_object_type
from app.services.pagination import Page

logger = logging.getLogger(__name__)


QUERY_NODE_TAGS = """
query GetTags($id: ID!) {
  node(id: $id) {
    ... on Product { tags }
    ... on Customer { tags }
    ... on Order { tags }
    ... on Article { tags }
  }
}
"""

MUTATION_TAGS_ADD = """
mutation tagOp($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    userErrors { field message }
  }
}
"""

MUTATION_TAGS_REMOVE = """
mutation removeTags($id: ID!, $tags: [String!]!) {
  tagsRemove(id: $id, tags: $tags) {
    userErrors { field message }
  }
}
"""

QUERY_METAFIELD = """
query ($ownerId: ID!, $namespace: String!, $key: String!) {
  node(id: $ownerId) {
    ... on HasMetafields {
      metafield(namespace: $namespace, key: $key) {
        id
        namespace
        key
        type
        value
      }
    }
  }
}
"""

MUTATION_METAFIELDS_SET = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id namespace key value type }
    userErrors { field message code }
  }
}
"""

MUTATION_METAFIELDS_DELETE = """
mutation ($metafields: [MetafieldIdentifierInput!]!) {
  metafieldsDelete(metafields: $metafields) {
    deletedMetafields { ownerId namespace key }
    userErrors { field message }
  }
}
"""

QUERY_METAOBJECT_BY_HANDLE = """
query ($handle: MetaobjectHandleInput!) {
  metaobjectByHandle(handle: $handle) { id }
}
"""

QUERY_SHOP = """
query {
  shop {
    email
    myshopifyDomain
  }
}
"""

# Tag listing per object type: (query, connection, page size, nodes carry tags)
TAG_PAGE_QUERIES = {
    "product": ("""
      query ($first: Int!, $after: String) {
        productTags(first: $first, after: $after) {
          nodes
          pageInfo { hasNextPage endCursor }
        }
      }
    """, "productTags", 1000, False),
    "customer": ("""
      query ($first: Int!, $after: String) {
        customers(first: $first, after: $after) {
          nodes { tags }
          pageInfo { hasNextPage endCursor }
        }
      }
    """, "customers", 200, True),
    "order": ("""
      query ($first: Int!, $after: String) {
        orders(first: $first, after: $after) {
          nodes { tags }
          pageInfo { hasNextPage endCursor }
        }
      }
    """, "orders", 100, True),
    "article": ("""
      query ($first: Int!, $after: String) {
        articles(first: $first, after: $after) {
          nodes { tags }
          pageInfo { hasNextPage endCursor }
        }
      }
    """, "articles", 50, True),
}


def _user_errors(data: dict, field: str) -> List[dict]:
    return (data.get(field) or {}).get("userErrors") or []


class ShopifyService:
    """Service for interacting with Shopify GraphQL API."""

    def __init__(self, shop: Optional[str] = None, token: Optional[str] = None, session=None):
        self.api_version = settings.shopify_api_version
        self._shop = shop
        self._token = token
        self.session = session or requests.Session()

    def _get_credentials(self):
        """Get current Shopify credentials from DB or config."""
        shop = self._shop or settings.get_shopify_shop()
        token = self._token or settings.get_shopify_token()
        return shop, token

    @property
    def shop_domain(self) -> str:
        return self._get_credentials()[0]

    def _graphql_request(self, query: str, variables: dict = None) -> dict:
        """Make a GraphQL request to Shopify."""
        shop, token = self._get_credentials()

        if not shop or not token:
            raise TransportError("Shopify credentials not configured. Please set them in Settings.")

        graphql_url = f"https://{shop}/admin/api/{self.api_version}/graphql.json"

        headers = {
            "X-Shopify-Access-Token": token,
            "Content-Type": "application/json"
        }
        logger.debug("GraphQL request variables=%s", variables)
        try:
            response = self.session.post(
                graphql_url,
                json={"query": query, "variables": variables or {}},
                headers=headers,
                timeout=settings.request_timeout_seconds
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TransportError(str(e)) from e

        if "errors" in data:
            raise TransportError(f"GraphQL errors: {data['errors']}")

        return data.get("data") or {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def execute(self, query: str, variables: dict = None) -> dict:
        """Run an arbitrary query and return its data envelope."""
        return self._graphql_request(query, variables)

    def get_shop_info(self) -> Dict[str, Any]:
        return self._graphql_request(QUERY_SHOP).get("shop") or {}

    def count_resources(self, object_type: str, search: Optional[str] = None) -> int:
        """Approximate count of resources of a type, 0 when unavailable."""
        count_field = get_object_type(object_type).count_field
        if not count_field:
            return 0

        try:
            if search:
                data = self._graphql_request(
                    f"query ($query: String) {{ {count_field}(query: $query) {{ count }} }}",
                    {"query": search}
                )
            else:
                data = self._graphql_request(f"query {{ {count_field} {{ count }} }}")
        except TransportError as e:
            logger.warning("Count query %s failed: %s", count_field, e)
            return 0
        return (data.get(count_field) or {}).get("count") or 0

    def fetch_owner_page(
        self,
        object_type: str,
        cursor: Optional[str],
        first: int,
        search: Optional[str] = None,
        with_tags: bool = False
    ) -> Optional[Page]:
        """Fetch one page of resource ids (and tags), or None if no data came back."""
        connection = get_object_type(object_type).connection
        node_fields = "id tags" if with_tags else "id"

        if search:
            query = f"""
            query ($first: Int!, $after: String, $query: String) {{
              {connection}(first: $first, after: $after, query: $query) {{
                edges {{ cursor node {{ {node_fields} }} }}
                pageInfo {{ hasNextPage }}
              }}
            }}
            """
            variables = {"first": first, "after": cursor, "query": search}
        else:
            query = f"""
            query ($first: Int!, $after: String) {{
              {connection}(first: $first, after: $after) {{
                edges {{ cursor node {{ {node_fields} }} }}
                pageInfo {{ hasNextPage }}
              }}
            }}
            """
            variables = {"first": first, "after": cursor}

        data = self._graphql_request(query, variables).get(connection)
        if not data:
            logger.info("No data returned from Shopify for %s", connection)
            return None

        edges = data.get("edges") or []
        has_more = bool((data.get("pageInfo") or {}).get("hasNextPage"))
        return Page(
            items=[e["node"] for e in edges],
            next_cursor=edges[-1]["cursor"] if has_more and edges else None,
            has_more=has_more,
        )

    def fetch_tags_page(self, object_type: str, cursor: Optional[str], first: Optional[int] = None) -> Optional[Page]:
        """Fetch one page of tags for an object type."""
        key = "article" if object_type == "blogPost" else object_type
        if key not in TAG_PAGE_QUERIES:
            return Page()

        query, connection, default_size, per_node = TAG_PAGE_QUERIES[key]
        data = self._graphql_request(query, {"first": first or default_size, "after": cursor}).get(connection)
        if not data:
            return None

        nodes = data.get("nodes") or []
        tags = [t for n in nodes for t in (n.get("tags") or [])] if per_node else list(nodes)
        page_info = data.get("pageInfo") or {}
        return Page(
            items=tags,
            next_cursor=page_info.get("endCursor"),
            has_more=bool(page_info.get("hasNextPage")),
        )

    def tag_page_size(self, object_type: str) -> int:
        key = "article" if object_type == "blogPost" else object_type
        return TAG_PAGE_QUERIES.get(key, (None, None, 50, True))[2]

    def fetch_metafield_definitions(self, object_type: str) -> List[dict]:
        """Fetch all metafield definitions for an owner type."""
        gid_type = get_object_type(object_type).gid_type
        owner_type = "COMPANY_LOCATION" if gid_type == "CompanyLocation" else gid_type.upper()
        query = """
        query ($ownerType: MetafieldOwnerType!, $after: String) {
          metafieldDefinitions(ownerType: $ownerType, first: 200, after: $after) {
            edges {
              node {
                id
                namespace
                key
                name
                description
                type { name }
                validations { name value }
              }
            }
            pageInfo { hasNextPage endCursor }
          }
        }
        """
        definitions = []
        cursor = None
        while True:
            data = self._graphql_request(query, {"ownerType": owner_type, "after": cursor})
            defs = data.get("metafieldDefinitions")
            if not defs:
                break
            definitions.extend(e["node"] for e in defs.get("edges") or [])
            page_info = defs.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        return definitions

    def resolve_metaobject(self, metaobject_type: str, handle: str) -> Optional[str]:
        data = self._graphql_request(
            QUERY_METAOBJECT_BY_HANDLE,
            {"handle": {"type": metaobject_type, "handle": handle}}
        )
        return (data.get("metaobjectByHandle") or {}).get("id")

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def get_tags(self, resource_id: str) -> List[str]:
        data = self._graphql_request(QUERY_NODE_TAGS, {"id": resource_id})
        return (data.get("node") or {}).get("tags") or []

    def add_tags(self, resource_id: str, tags: List[str]) -> None:
        data = self._graphql_request(MUTATION_TAGS_ADD, {"id": resource_id, "tags": tags})
        errors = _user_errors(data, "tagsAdd")
        if errors:
            raise RemoteMutationError(errors)

    def remove_tags(self, resource_id: str, tags: List[str]) -> None:
        data = self._graphql_request(MUTATION_TAGS_REMOVE, {"id": resource_id, "tags": tags})
        errors = _user_errors(data, "tagsRemove")
        if errors:
            raise RemoteMutationError(errors)

    # ------------------------------------------------------------------
    # Metafields
    # ------------------------------------------------------------------

    def get_metafield(self, owner_id: str, namespace: str, key: str) -> Optional[dict]:
        data = self._graphql_request(
            QUERY_METAFIELD,
            {"ownerId": owner_id, "namespace": namespace, "key": key}
        )
        return (data.get("node") or {}).get("metafield")

    def set_metafield(self, owner_id: str, namespace: str, key: str, type_name: str, value: str) -> dict:
        metafield_input = {
            "ownerId": owner_id,
            "namespace": namespace,
            "key": key,
            "type": type_name,
            "value": value,
        }
        data = self._graphql_request(MUTATION_METAFIELDS_SET, {"metafields": [metafield_input]})
        errors = _user_errors(data, "metafieldsSet")
        if errors:
            raise RemoteMutationError(errors)
        metafields = (data.get("metafieldsSet") or {}).get("metafields") or []
        return metafields[0] if metafields else {}

    def delete_metafields(self, identifiers: List[dict]) -> List[Optional[dict]]:
        data = self._graphql_request(MUTATION_METAFIELDS_DELETE, {"metafields": identifiers})
        errors = _user_errors(data, "metafieldsDelete")
        if errors:
            raise RemoteMutationError(errors)
        deleted = (data.get("metafieldsDelete") or {}).get("deletedMetafields") or []
        if not deleted or deleted[0] is None:
            raise RemoteMutationError([{"message": "Failed"}])
        return deleted


def get_shopify_service() -> ShopifyService:
    """FastAPI dependency: a client for the configured shop."""
    return ShopifyService()

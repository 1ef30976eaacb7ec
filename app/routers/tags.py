"""Bulk tag editing router."""
from fastapi import APIRouter, Depends, HTTPException

from app.exceptions import ValidationError, status_for
from app.schemas import (
    JobResponse,
    TagsCsvRequest,
    TagsGlobalRemoveRequest,
    TagSearchRequest,
    TagSearchResponse,
)
from app.services.audit_service import TAGS_ADDED, TAGS_REMOVED
from app.services.csv_service import parse_csv
from app.services.job_service import job_service
from app.services.object_types import get_object_type
from app.services.pagination import MATCH_TYPES, collect_tags, filter_tags
from app.services.shopify_service import ShopifyService, get_shopify_service

router = APIRouter()


def _taggable(object_type: str):
    info = get_object_type(object_type)
    if not info.taggable:
        raise ValidationError(f"Tags are not supported for {object_type}")
    return info


def _identifier_column(request: TagsCsvRequest, info) -> str:
    if request.identifier_column:
        return request.identifier_column
    # The tag editor looks products up by SKU
    return "Sku" if info.name == "product" else info.identifier_column


@router.post("/add", response_model=JobResponse)
def add_tags(
    request: TagsCsvRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """
    Add tags to every resource listed in a CSV.

    Rows can carry their own comma separated tags in a ``value`` column;
    otherwise ``tags`` from the request is used.
    """
    try:
        info = _taggable(request.object_type)
        column = _identifier_column(request, info)
        rows = parse_csv(request.csv_content, column, object_type=info.name)
        by_sku = column.lower() == "sku"

        job = job_service.submit(
            client,
            label="add-tags",
            object_type=info.name,
            run=lambda ex: ex.run_add_tags(rows, info.name, request.tags, by_sku=by_sku),
            operation=TAGS_ADDED,
            export_mode="add",
            identifier_column=column,
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/remove", response_model=JobResponse)
def remove_tags(
    request: TagsCsvRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """Remove tags from the resources listed in a CSV, where present."""
    try:
        info = _taggable(request.object_type)
        column = _identifier_column(request, info)
        rows = parse_csv(request.csv_content, column, object_type=info.name)
        by_sku = column.lower() == "sku"

        job = job_service.submit(
            client,
            label="remove-tags",
            object_type=info.name,
            run=lambda ex: ex.run_remove_tags(rows, info.name, request.tags, by_sku=by_sku),
            operation=TAGS_REMOVED,
            export_mode="remove",
            identifier_column=column,
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/remove-global", response_model=JobResponse)
def remove_tags_global(
    request: TagsGlobalRemoveRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """Remove tags from every resource of the type that has them."""
    try:
        info = _taggable(request.object_type)
        if not [t for t in request.tags if t.strip()]:
            raise ValidationError("No tags provided")

        job = job_service.submit(
            client,
            label="remove-tags-global",
            object_type=info.name,
            run=lambda ex: ex.run_remove_tags_global(info.name, request.tags),
            operation=TAGS_REMOVED,
            export_mode="remove",
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/search", response_model=TagSearchResponse)
def search_tags(
    request: TagSearchRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """Collect every tag in use for the type, then filter by the conditions."""
    try:
        info = _taggable(request.object_type)
        if request.match_type not in MATCH_TYPES:
            raise ValidationError(f"Unknown match type: {request.match_type}")

        all_tags = collect_tags(
            lambda cursor, first: client.fetch_tags_page(info.name, cursor, first),
            client.tag_page_size(info.name),
        )
        conditions = [c.model_dump() for c in request.conditions if c.value.strip()]
        matched = filter_tags(all_tags, conditions, request.match_type)

        return {
            "object_type": info.name,
            "total_tags": len(all_tags),
            "tags": matched,
        }
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))

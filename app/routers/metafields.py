"""Bulk metafield editing router."""
from fastapi import APIRouter, Depends, HTTPException

from app.exceptions import status_for
from app.schemas import (
    JobResponse,
    MetafieldCsvRequest,
    MetafieldDefinitionsRequest,
    MetafieldRemoveAllRequest,
    MetafieldTarget,
    MetafieldUpdateRequest,
)
from app.services.audit_service import METAFIELD_REMOVED, METAFIELD_UPDATED
from app.services.csv_service import parse_csv
from app.services.job_service import job_service
from app.services.metafield_values import ListMode, MetafieldDescriptor
from app.services.object_types import get_object_type
from app.services.shopify_service import ShopifyService, get_shopify_service

router = APIRouter()


def _descriptor(target: MetafieldTarget) -> MetafieldDescriptor:
    return MetafieldDescriptor(target.namespace, target.key, target.type, target.metaobject_type)


def _descriptor_dict(descriptor: MetafieldDescriptor) -> dict:
    return {
        "namespace": descriptor.namespace,
        "key": descriptor.key,
        "type": descriptor.type,
        "metaobject_type": descriptor.metaobject_type,
    }


@router.post("/definitions")
def get_definitions(
    request: MetafieldDefinitionsRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """List the metafield definitions available for an object type."""
    try:
        info = get_object_type(request.object_type)
        definitions = client.fetch_metafield_definitions(info.name)
        return {
            "object_type": info.name,
            "count": len(definitions),
            "definitions": [
                {
                    "name": d.get("name"),
                    "description": d.get("description"),
                    **_descriptor_dict(MetafieldDescriptor.from_definition(d)),
                }
                for d in definitions
            ],
        }
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/remove-all", response_model=JobResponse)
def remove_metafield_all(
    request: MetafieldRemoveAllRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """Delete a metafield from every resource of the type."""
    try:
        info = get_object_type(request.object_type)
        descriptor = _descriptor(request.metafield)

        job = job_service.submit(
            client,
            label="remove-metafield-all",
            object_type=info.name,
            run=lambda ex: ex.run_remove_metafield_all(info.name, descriptor),
            operation=METAFIELD_REMOVED,
            export_mode="remove",
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/remove", response_model=JobResponse)
def remove_metafield(
    request: MetafieldCsvRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """Delete a metafield from the resources listed in a CSV."""
    try:
        info = get_object_type(request.object_type)
        descriptor = _descriptor(request.metafield)
        column = request.identifier_column or info.identifier_column
        rows = parse_csv(request.csv_content, column, object_type=info.name)

        job = job_service.submit(
            client,
            label="remove-metafield",
            object_type=info.name,
            run=lambda ex: ex.run_remove_metafield(rows, info.name, descriptor),
            operation=METAFIELD_REMOVED,
            export_mode="remove",
            identifier_column=column,
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/update", response_model=JobResponse)
def update_metafield(
    request: MetafieldUpdateRequest,
    client: ShopifyService = Depends(get_shopify_service)
):
    """
    Set a metafield from the ``value`` column of a CSV.

    List metafields are reconciled with ``list_mode``. Removals are audited
    as Metafield-removed so that undo puts the values back.
    """
    try:
        info = get_object_type(request.object_type)
        descriptor = _descriptor(request.metafield)
        column = request.identifier_column or info.identifier_column
        rows = parse_csv(
            request.csv_content,
            column,
            object_type=info.name,
            require_value=True,
        )
        removing = descriptor.is_list and request.list_mode in (ListMode.REMOVE_SUBSET, ListMode.REMOVE_ALL)

        job = job_service.submit(
            client,
            label="update-metafield",
            object_type=info.name,
            run=lambda ex: ex.run_update_metafield(rows, info.name, descriptor, request.list_mode),
            operation=METAFIELD_REMOVED if removing else METAFIELD_UPDATED,
            export_mode="update",
            export_key=f"{descriptor.namespace}.{descriptor.key}",
            identifier_column=column,
        )
        return job.to_dict()
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))

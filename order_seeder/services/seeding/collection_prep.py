"""
Collection prep creation use case.
"""
import logging
from typing import Any, Mapping, Union

from order_seeder.core.utils import new_id
from order_seeder.schemas.seed import (
    CreateCollectionPrepRequest,
    CreateCollectionPrepResponse,
    parse_collection_prep_request,
)
from order_seeder.services.collection_prep_service import (
    CollectionPrepService,
    generate_collection_prep_name,
)

logger = logging.getLogger(__name__)


class CreateCollectionPrepOrchestrator:
    """Creates one collection prep with a box per order."""

    def __init__(self, service: CollectionPrepService):
        self.service = service

    async def execute(
        self, request: Union[CreateCollectionPrepRequest, Mapping[str, Any]]
    ) -> CreateCollectionPrepResponse:
        if not isinstance(request, CreateCollectionPrepRequest):
            request = parse_collection_prep_request(dict(request))

        name = request.collection_prep_name or generate_collection_prep_name(
            request.test_tag, request.carrier, request.location_id
        )
        boxes = len(request.order_ids)

        collection_prep = await self.service.create_collection_prep(
            region=request.region,
            carrier=request.carrier,
            location_id=request.location_id,
            prep_date=request.prep_date,
            boxes=boxes,
            collection_prep_id=new_id(),
        )
        logger.info(f"Created collection prep {name} ({collection_prep.id})")

        return CreateCollectionPrepResponse(
            collection_prep_id=collection_prep.id,
            collection_prep_name=name,
            region=request.region,
            boxes=boxes,
        )

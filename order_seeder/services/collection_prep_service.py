"""
Collection prep creation and naming.
"""
import logging
import secrets
from datetime import datetime
from typing import Optional

from order_seeder.models.wms import CollectionPrep
from order_seeder.services.wms_repository import WmsRepository

logger = logging.getLogger(__name__)


def generate_collection_prep_name(
    test_tag: Optional[str],
    carrier: str,
    location_id: str,
) -> str:
    """<testTag|Test>-<carrier>-<locationId>-<4 hex chars>"""
    prefix = test_tag or "Test"
    return f"{prefix}-{carrier}-{location_id}-{secrets.token_hex(2)}"


class CollectionPrepService:
    def __init__(self, repository: WmsRepository):
        self.repository = repository

    async def create_collection_prep(
        self,
        region: str,
        carrier: str,
        location_id: str,
        prep_date: datetime,
        boxes: int,
        collection_prep_id: Optional[str] = None,
    ) -> CollectionPrep:
        collection_prep = await self.repository.create_collection_prep(
            region=region,
            carrier=carrier,
            location_id=location_id,
            prep_date=prep_date,
            boxes=boxes,
            collection_prep_id=collection_prep_id,
        )
        logger.info(
            f"Collection prep {collection_prep.id} ({carrier}, {location_id}, {region}) with {boxes} boxes"
        )
        return collection_prep

"""
Seeding use cases.
"""
from order_seeder.services.seeding.shopify_orders import (
    ErrorPolicy,
    SeedShopifyOrdersOrchestrator,
    SeedShopifyOrdersResult,
)
from order_seeder.services.seeding.wms_entities import SeedWmsEntitiesOrchestrator
from order_seeder.services.seeding.collection_prep import CreateCollectionPrepOrchestrator
from order_seeder.services.seeding.cleanup import CleanupOrchestrator, determine_tag
from order_seeder.services.seeding.flow import SeedingFlow, SeedingFlowResult

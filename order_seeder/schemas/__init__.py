from order_seeder.schemas.seed import (
    CamelModel,
    CustomerInput,
    LineItemInput,
    OrderInput,
    BatchSeedRequest,
    parse_batch_request,
    LineItemResult,
    SeedResultEntry,
    OrderFailureResult,
    BatchSeedResponse,
    ShopifyLineItemInput,
    ShopifyOrderInput,
    SeedWmsEntitiesRequest,
    parse_wms_entities_request,
    SeedWmsEntitiesResponse,
    WmsOrderResult,
    ShipmentResult,
    PrepPartItemResult,
    CreateCollectionPrepRequest,
    parse_collection_prep_request,
    CreateCollectionPrepResponse,
    CleanupRequest,
    parse_cleanup_request,
    CleanupResponse,
    SeedConfig,
    parse_seed_config,
)

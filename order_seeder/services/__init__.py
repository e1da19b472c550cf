from order_seeder.services.shopify_gateway import (
    ShopifyGatewayBase,
    ShopifyGateway,
    SimulatedShopifyGateway,
    create_shopify_gateway,
)
from order_seeder.services.wms_repository import (
    WmsRepository,
    SqlAlchemyWmsRepository,
    DryRunWmsRepository,
)
from order_seeder.services.wms_service import WmsService

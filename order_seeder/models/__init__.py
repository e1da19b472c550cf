from order_seeder.models.wms import (
    ShipmentStatus,
    PnpOrderBoxStatus,
    Customer,
    Order,
    Variant,
    Part,
    VariantOrder,
    CollectionPrep,
    Prep,
    PrepPart,
    PrepPartItem,
    Shipment,
    PnpPackageInfo,
    PnpBox,
    PnpOrderBox,
)

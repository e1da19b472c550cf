from order_seeder.core.config import Settings, ShopifyCredentials, load_settings
from order_seeder.core.database import Base, create_engine_and_sessionmaker, session_scope
from order_seeder.core.exceptions import (
    SeederBaseError,
    ConfigurationError,
    StagingGuardrailError,
    SeedValidationError,
    VariantResolutionError,
    ShopifyServiceError,
    WmsServiceError,
    WmsRepositoryError,
    BatchSeedError,
)

"""
WMS Order Seeder

Seeds test orders into a Shopify store and mirrors them into the
warehouse-management (WMS) database for staging/QA environments.
"""
__version__ = "1.0.0"

"""
                        Services Module

Contains all business logic for the ordering pipeline. POS integrations follow
the hybrid architecture pattern: each provider has a Real adapter and a Mock
wrapper selected per provider from configuration.

Services:
    - tenant: Restaurant lookup, activity gate and call registration
    - credentials: Per-tenant POS credentials and cached tokens
    - menu: Normalized menu storage, search, validation and pricing
    - pos: Toast / Clover adapters and the provider factory
    - orders: Draft -> priced -> confirmed pipeline with idempotent submit
"""

"""Unit tests for pricekeeper web route modules.

Testing pattern:
    - Build the app with create_app(with_lifespan=False, metrics=False)
    - Override get_pricing_service / get_sweeper with mocks
    - Check status codes, response shapes and error mapping
"""

"""
OrderDesk Orders Engine - App Configuration
==============================================
Validates the ORDERDESK settings once Django finishes loading.

Rules:
- Runs once via ready()
- Invalid settings raise ImproperlyConfigured and stop startup
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger("orderdesk.orders")


class OrdersConfig(AppConfig):
    name = "engines.orders"
    label = "orders"
    verbose_name = "OrderDesk Orders"

    def ready(self):
        from core.config.settings import effective_settings, validate_settings

        validate_settings()
        effective = effective_settings()
        logger.info(
            f"OrderDesk settings: IVA_RATE={effective['IVA_RATE']}, "
            f"IVA_MATCH_TOLERANCE={effective['IVA_MATCH_TOLERANCE']}, "
            f"DEFAULT_INVOICE_PERCENTAGE={effective['DEFAULT_INVOICE_PERCENTAGE']}"
        )

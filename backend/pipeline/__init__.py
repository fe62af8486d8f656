# pipeline/__init__.py
from pipeline.order_created import (
    OrderCreatedHandler,
    IssuanceConfig,
)

__all__ = [
    "OrderCreatedHandler",
    "IssuanceConfig",
]

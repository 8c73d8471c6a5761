from .order_models import ImportLog, Order

__all__ = ["ImportLog", "Order"]

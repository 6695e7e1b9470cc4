from sodflow.models.order_request import OrderRequest

__all__ = ["OrderRequest"]

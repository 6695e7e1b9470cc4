"""
Order Request Model

A shortage handling request raised for one sales order. The history column
holds the serialized workflow snapshot as an opaque JSON text blob, the
same way the Dataverse crdfd_order_requests.crdfd_history column does.
"""
from sqlalchemy import Column, DateTime, String, Text, func

from sodflow.db.base import Base


class OrderRequest(Base):
    __tablename__ = "order_requests"

    # Canonical record id (lower case, no braces)
    id = Column(String(64), primary_key=True)

    # Serialized WorkflowSnapshot
    history = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<OrderRequest(id={self.id})>"

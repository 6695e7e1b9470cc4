"""
SOD Flow - shortage resolution workflow for sales order line items.
"""
__version__ = "1.0.0"

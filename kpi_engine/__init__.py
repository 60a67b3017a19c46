"""
Business Metrics Engine

Turns back office orders, customers, products and service requests into
dashboard KPIs.
"""

__version__ = "1.0.0"

"""
Search Insights
Search behavior analytics for an e-commerce storefront
"""

__version__ = "1.0.0"

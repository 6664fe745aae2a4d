"""
Database module for Search Insights
Raw search, conversion and refinement event tables
"""

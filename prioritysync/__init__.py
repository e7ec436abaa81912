"""Bidirectional priority sync between a Notion task database and GitHub labels"""

__version__ = "1.0.0"

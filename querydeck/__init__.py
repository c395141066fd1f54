"""
QueryDeck - Tabbed Query Workspace Engine
=========================================

Headless engine behind a tabbed database browser: concurrent query/browse
tabs, windowed table loading, display sorting, and insert/update/delete
statements synthesized from edits made directly on result rows.
"""

__version__ = "0.1.0"

"""
Shared helpers: encryption, message parsing, unsubscribe detection and asyncio utilities.
"""

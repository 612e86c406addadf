"""
Services for loading mailbox history into the analytics store.
"""

from .email_loader import PAGE_SIZE, publish_all_emails, save_batch

__all__ = ["PAGE_SIZE", "publish_all_emails", "save_batch"]

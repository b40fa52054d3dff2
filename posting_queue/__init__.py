"""Posting queue - durable FIFO of documents to post, with retry state."""

from posting_queue.db import init_posting_queue_db
from posting_queue.models import PageMeta, PostingQueueItem, PostingQueuePage
from posting_queue.queue import PostingQueue

__all__ = [
    "PageMeta",
    "PostingQueue",
    "PostingQueueItem",
    "PostingQueuePage",
    "init_posting_queue_db",
]

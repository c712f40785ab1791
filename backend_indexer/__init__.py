"""
Backend Indexer: NFT webhook indexer for user-provisioned tenant databases.

Receives Helius transaction webhooks (NFT mint, sale, listing, compressed mint),
normalizes each event into a fixed per-category record and fans it out to every
active indexing job's own database. Modular architecture with clear separation
between normalizer, job cache, dispatcher, queue workers and API server.
"""

__version__ = "0.1.0"

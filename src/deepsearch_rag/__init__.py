"""deepsearch-rag: document ingestion, user-scoped retrieval and grounded answers."""

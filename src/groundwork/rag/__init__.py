"""Retrieval: lexical index, embeddings, expansion, hybrid ranking, reranking."""

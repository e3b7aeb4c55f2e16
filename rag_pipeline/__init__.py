"""
rag_pipeline — Retrieval-Augmented Generation pipeline.

Components:
  timeout         — deadline guard with fallback value (cancels the loser)
  embedder        — text → vector (Jina / Hugging Face + hash fallback)
  vector_store    — in-memory cosine-similarity search over the corpus
  knowledge_base  — seeds the sample news articles on start-up
  session_cache   — Redis session histories with in-memory fallback
  llm_engine      — Gemini (OpenAI-compatible) answer generator
  orchestrator    — the four-stage chat pipeline under one deadline
"""

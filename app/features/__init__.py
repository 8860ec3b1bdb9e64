"""
Features Module - Self-contained feature units.

Each feature is a modular unit with its own logic:
- knowledge: Knowledge cards (summarize, embed, hybrid search, ingestion pipeline)
- chat: Question/answer proxy with duplicate suggestions
"""

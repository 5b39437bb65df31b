"""Prompt and message construction.

Composition:
    - `message_builder`: TASK / OUTPUT / INPUT prompt blocks and chat turns.
    - `data_compressor`: Lossless compaction of JSON-like input payloads.
"""

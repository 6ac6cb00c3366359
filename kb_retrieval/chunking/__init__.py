"""Chunking utilities for turning knowledge-base text into retrievable passages.

Example
-------
```python
from kb_retrieval.chunking import StructuralChunker

chunker = StructuralChunker(max_tokens=300, overlap_tokens=50)
chunks = chunker.split("# Opening hours\nMon-Fri 8-16", context_prefix="Library")
# ["[Library] Opening hours: Mon-Fri 8-16"]
```
"""

from .structural import Section, StructuralChunker, estimate_tokens, sliding_windows, split_text

__all__ = ["Section", "StructuralChunker", "estimate_tokens", "sliding_windows", "split_text"]

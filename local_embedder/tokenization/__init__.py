"""
Tokenization subpackage -- text to (token_ids, attention_mask).
"""

from local_embedder.tokenization.bert_tokenizer import (
    BertTokenizer,
    EncodedSequence,
    load_vocabulary,
)

__all__ = ["BertTokenizer", "EncodedSequence", "load_vocabulary"]

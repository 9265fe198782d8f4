"""
BERT WordPiece Tokenizer
=========================
Converts raw text into the fixed-length ``(token_ids, attention_mask)`` pair
that BERT-style ONNX / OpenVINO models expect.

Why not transformers.AutoTokenizer?
------------------------------------
Inference runs on OpenVINO without PyTorch or transformers installed.  The
model still expects *exactly* the token ids the reference tokenizer would
produce (same vocabulary, same [CLS]/[SEP] placement, same padding), because
a single shifted id silently changes every embedding downstream.  This
module re-implements the reference pipeline step by step:

    1. clean        -- drop NUL, U+FFFD and control chars, map every
                       whitespace char to a single ASCII space
    2. lowercase    -- optional, str.lower() (locale-independent)
    3. split        -- on spaces, empty pieces discarded
    4. punctuation  -- every punctuation char becomes its own piece
    5. WordPiece    -- greedy longest-match-first, "##" continuation prefix
    6. ids          -- vocabulary lookup, misses map to [UNK]
    7. assemble     -- [CLS] content... [SEP] [PAD]... to max_length

Character classes match the reference BERT BasicTokenizer rather than
plain Unicode categories: tab, newline and carriage return count as
whitespace (so a newline separates two words instead of being dropped),
and non-alphanumeric ASCII symbols such as "+", "$", "^" and "|" count
as punctuation (so "a+b" is three segments).

Vocabulary format (vocab.txt):
    UTF-8, one token per line, the line index is the token id.
    Blank lines are skipped but still consume an id.
"""

import logging
import unicodedata
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Union

import numpy as np

from local_embedder.exceptions import (
    InvalidConfigurationError,
    VocabularyNotFoundError,
)

logger = logging.getLogger(__name__)

UNK_TOKEN = "[UNK]"
PAD_TOKEN = "[PAD]"
CLS_TOKEN = "[CLS]"
SEP_TOKEN = "[SEP]"

# Common BERT numbering, used only when the vocabulary lacks the entry
DEFAULT_UNK_ID = 100
DEFAULT_PAD_ID = 0
DEFAULT_CLS_ID = 101
DEFAULT_SEP_ID = 102

# Longer pieces become a single [UNK] without attempting WordPiece
MAX_INPUT_CHARS_PER_WORD = 200

CONTINUATION_PREFIX = "##"


class EncodedSequence(NamedTuple):
    """token_ids and attention_mask, both int64 arrays of length max_length."""

    token_ids: np.ndarray
    attention_mask: np.ndarray


# ---------------------------------------------------------------------------
# Character classes (same rules as the reference BERT BasicTokenizer)
# ---------------------------------------------------------------------------

def _is_whitespace(char: str) -> bool:
    if char in (" ", "\t", "\n", "\r"):
        return True
    return unicodedata.category(char) == "Zs"


def _is_control(char: str) -> bool:
    # \t \n \r are whitespace, not control
    if char in ("\t", "\n", "\r"):
        return False
    return unicodedata.category(char).startswith("C")


def _is_punctuation(char: str) -> bool:
    cp = ord(char)
    # Non-letter/number ASCII such as "^", "$" and "`" are treated as
    # punctuation even though Unicode files some of them under symbols.
    if 33 <= cp <= 47 or 58 <= cp <= 64 or 91 <= cp <= 96 or 123 <= cp <= 126:
        return True
    return unicodedata.category(char).startswith("P")


def load_vocabulary(vocab_path: Union[str, Path]) -> Dict[str, int]:
    """
    Read vocab.txt into a token -> id dict.

    Raises:
        VocabularyNotFoundError : if the path is not a readable file
    """
    path = Path(vocab_path)
    if not path.is_file():
        raise VocabularyNotFoundError(str(vocab_path))

    vocab: Dict[str, int] = {}
    try:
        # utf-8-sig drops a leading BOM; universal newlines accept \r\n
        with open(path, "r", encoding="utf-8-sig") as f:
            for index, line in enumerate(f):
                token = line.strip()
                if token:
                    vocab[token] = index
    except OSError as exc:
        raise VocabularyNotFoundError(str(vocab_path)) from exc

    logger.info("Loaded vocabulary: %d tokens from %s", len(vocab), path)
    return vocab


class BertTokenizer:
    """
    WordPiece tokenizer compatible with BERT uncased/cased vocabularies.

    The vocabulary dict is never modified after construction, so one
    tokenizer can be used from many threads at once.

    Usage:
        tokenizer = BertTokenizer.from_vocab("models/all-MiniLM-L6-v2/vocab.txt")
        ids, mask = tokenizer.encode("Hello world.", max_length=16)
    """

    def __init__(
        self,
        vocab: Dict[str, int],
        do_lower_case: bool = True,
        max_input_chars_per_word: int = MAX_INPUT_CHARS_PER_WORD,
    ):
        self._vocab = vocab
        self.do_lower_case = do_lower_case
        self.max_input_chars_per_word = max_input_chars_per_word

        self.cls_token_id = vocab.get(CLS_TOKEN, DEFAULT_CLS_ID)
        self.sep_token_id = vocab.get(SEP_TOKEN, DEFAULT_SEP_ID)
        self.pad_token_id = vocab.get(PAD_TOKEN, DEFAULT_PAD_ID)
        self.unk_token_id = vocab.get(UNK_TOKEN, DEFAULT_UNK_ID)

    @classmethod
    def from_vocab(
        cls, vocab_path: Union[str, Path], do_lower_case: bool = True
    ) -> "BertTokenizer":
        """Create a tokenizer from a vocab.txt file."""
        return cls(load_vocabulary(vocab_path), do_lower_case=do_lower_case)

    @property
    def vocab_size(self) -> int:
        return len(self._vocab)

    def token_to_id(self, token: str) -> int:
        return self._vocab.get(token, self.unk_token_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tokenize(self, text: str) -> List[str]:
        """Return the WordPiece pieces for ``text`` (no special tokens)."""
        pieces: List[str] = []
        for word in self._preprocess(text).split(" "):
            if not word:
                continue
            for segment in self._split_on_punctuation(word):
                if len(segment) > self.max_input_chars_per_word:
                    pieces.append(UNK_TOKEN)
                    continue
                pieces.extend(self._wordpiece(segment))
        return pieces

    def encode(self, text: str, max_length: int) -> EncodedSequence:
        """
        Encode one text into exactly ``max_length`` ids and mask values.

        Layout for max_length >= 2::

            [CLS] t1 t2 ... tk [SEP] [PAD] ... [PAD]
              1    1  1      1   1     0         0

        k is at most max_length - 2; extra trailing pieces are dropped.
        With max_length == 1 only [CLS] fits; max_length == 0 gives two
        empty arrays.

        Raises:
            InvalidConfigurationError : if max_length is negative
        """
        if max_length < 0:
            raise InvalidConfigurationError(
                f"max_length must be >= 0, got {max_length}"
            )

        token_ids = np.full(max_length, self.pad_token_id, dtype=np.int64)
        attention_mask = np.zeros(max_length, dtype=np.int64)
        if max_length == 0:
            return EncodedSequence(token_ids, attention_mask)

        token_ids[0] = self.cls_token_id
        attention_mask[0] = 1
        if max_length == 1:
            return EncodedSequence(token_ids, attention_mask)

        content = [self.token_to_id(p) for p in self.tokenize(text)]
        content = content[: max_length - 2]
        end = len(content) + 1

        token_ids[1:end] = content
        token_ids[end] = self.sep_token_id
        attention_mask[: end + 1] = 1
        return EncodedSequence(token_ids, attention_mask)

    def encode_batch(
        self, texts: Sequence[str], max_length: int
    ) -> List[EncodedSequence]:
        """Encode each text independently; output order matches input."""
        return [self.encode(text, max_length) for text in texts]

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    def _preprocess(self, text: str) -> str:
        text = self._clean_text(text)
        if self.do_lower_case:
            text = text.lower()
        return text

    @staticmethod
    def _clean_text(text: str) -> str:
        output = []
        for char in text:
            cp = ord(char)
            if cp == 0 or cp == 0xFFFD or _is_control(char):
                continue
            output.append(" " if _is_whitespace(char) else char)
        return "".join(output)

    @staticmethod
    def _split_on_punctuation(word: str) -> List[str]:
        """Split "hello." into ["hello", "."]."""
        segments: List[str] = []
        current: List[str] = []
        for char in word:
            if _is_punctuation(char):
                if current:
                    segments.append("".join(current))
                    current = []
                segments.append(char)
            else:
                current.append(char)
        if current:
            segments.append("".join(current))
        return segments

    def _wordpiece(self, segment: str) -> List[str]:
        pieces: List[str] = []
        start = 0
        while start < len(segment):
            end = len(segment)
            match: Optional[str] = None
            while start < end:
                candidate = segment[start:end]
                if start > 0:
                    candidate = CONTINUATION_PREFIX + candidate
                if candidate in self._vocab:
                    match = candidate
                    break
                end -= 1

            if match is None:
                # the unmatched remainder collapses into one [UNK]
                pieces.append(UNK_TOKEN)
                break

            pieces.append(match)
            start = end
        return pieces

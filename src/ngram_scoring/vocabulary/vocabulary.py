import io
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

START_TOKEN = "<s>"
STOP_TOKEN = "</s>"
NULL_TOKEN = "<null>"
UNK_TOKEN = "<unk>"

RESERVED_TOKENS = [START_TOKEN, STOP_TOKEN, NULL_TOKEN, UNK_TOKEN]


class Vocabulary:
    """
    Bidirectional word <-> id table.

    Ids are assigned in the order the words are given. Lookups never fail:
    out-of-vocabulary words resolve to the id of the unknown symbol, which
    is appended to the table if the word list does not contain it.

    Public API:
      - lookup_word(word: str) -> int
      - size() -> int
      - build(sentences, size) -> "Vocabulary"
      - save(path) / load(path)
    """

    def __init__(self, words: Iterable[str], unk: str = UNK_TOKEN):
        self.vocab: Dict[int, str] = {}          # id -> word
        self.inverse_vocab: Dict[str, int] = {}  # word -> id

        for word in words:
            if word in self.inverse_vocab:
                continue
            cur_id = len(self.vocab)
            self.vocab[cur_id] = word
            self.inverse_vocab[word] = cur_id

        if unk not in self.inverse_vocab:
            cur_id = len(self.vocab)
            self.vocab[cur_id] = unk
            self.inverse_vocab[unk] = cur_id

        self.unk = unk
        self.unk_id = self.inverse_vocab[unk]

    def lookup_word(self, word: str) -> int:
        return self.inverse_vocab.get(word, self.unk_id)

    def size(self) -> int:
        return len(self.vocab)

    def __len__(self) -> int:
        return len(self.vocab)

    def __contains__(self, word: str) -> bool:
        return word in self.inverse_vocab

    def __eq__(self, other) -> bool:
        if not isinstance(other, Vocabulary):
            return NotImplemented
        return self.words == other.words and self.unk == other.unk

    @property
    def words(self) -> List[str]:
        return [self.vocab[i] for i in range(len(self.vocab))]

    @property
    def start_id(self) -> int:
        return self.lookup_word(START_TOKEN)

    @property
    def stop_id(self) -> int:
        return self.lookup_word(STOP_TOKEN)

    @property
    def null_id(self) -> int:
        return self.lookup_word(NULL_TOKEN)

    @classmethod
    def build(cls, sentences: Iterable[List[str]], size: Optional[int] = None) -> "Vocabulary":
        """
        Build a vocabulary from tokenized sentences.

        The reserved symbols come first; then the `size` most frequent words
        (all words when `size` is None). Ties are broken by first occurrence.
        """
        counts = Counter()
        for words in sentences:
            counts.update(words)
        for tok in RESERVED_TOKENS:
            counts.pop(tok, None)

        ranked = [w for w, _ in counts.most_common(size)]
        return cls(RESERVED_TOKENS + ranked)

    def save(self, path: Union[str, Path]) -> None:
        """Write one word per line, in id order."""
        with io.open(path, "w", encoding="utf-8") as f:
            for word in self.words:
                f.write(word + "\n")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Vocabulary":
        with io.open(path, "r", encoding="utf-8") as f:
            words = [line.rstrip("\n") for line in f if line.strip()]
        return cls(words)

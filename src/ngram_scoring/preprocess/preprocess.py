"""
N-gram preparation
------------------
Turns sentences into fixed-size n-gram windows for training.

- pad_sequence: prepend order-1 start ids, append one stop id
- sliding_windows: overlapping windows of length `order`, left to right
- preprocess_words / write_ngrams: the text -> numberized n-gram file
  step that feeds the memory-mapped dataset builder
"""

import io
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, TypeVar, Union

from ngram_scoring.vocabulary.vocabulary import Vocabulary

T = TypeVar("T")

logger = logging.getLogger(__name__)


class NgramArityError(ValueError):
    """A line that should hold exactly one n-gram has the wrong field count."""

    def __init__(self, expected: int, found: int):
        super().__init__(f"expected {expected} fields in instance, found {found}")
        self.expected = expected
        self.found = found


def pad_sequence(tokens: Sequence[T], order: int, start: T, stop: T) -> List[T]:
    """
    Add order-1 start symbols at the beginning and one stop symbol at the end,
    so the first n-gram predicts the first real token.

    Returns a list of length len(tokens) + order.
    """
    if order < 1:
        raise ValueError(f"n-gram order must be positive, got {order}")
    return [start] * (order - 1) + list(tokens) + [stop]


def sliding_windows(padded: Sequence[T], order: int) -> Iterator[List[T]]:
    """
    Yield every window of length `order` in left-to-right order.

    A sequence of length L yields L - order + 1 windows (none if L < order).
    """
    if order < 1:
        raise ValueError(f"n-gram order must be positive, got {order}")
    for j in range(order - 1, len(padded)):
        yield list(padded[j - order + 1:j + 1])


def preprocess_words(
    words: Sequence[str],
    order: int,
    vocab: Vocabulary,
    numberize: bool = True,
    add_start_stop: bool = True,
    ngramize: bool = True,
) -> List[List[int]]:
    """
    Convert one sentence into a list of integer n-grams.

    Args:
        words: tokens of the sentence.
        order: n-gram size.
        vocab: used to numberize words and to find <s> / </s>.
        numberize: look words up in `vocab`; otherwise parse them as integers.
        add_start_stop: pad the sentence before windowing.
        ngramize: window the sentence; otherwise the line is a single n-gram
            and must hold exactly `order` tokens.

    Raises:
        NgramArityError: ngramize is off and the line is not one n-gram.
    """
    if numberize:
        nums = [vocab.lookup_word(w) for w in words]
    else:
        nums = [int(w) for w in words]

    if not ngramize:
        if len(nums) != order:
            raise NgramArityError(order, len(nums))
        return [nums]

    if add_start_stop:
        nums = pad_sequence(nums, order, vocab.start_id, vocab.stop_id)
    return list(sliding_windows(nums, order))


def read_sentences(path: Union[str, Path]) -> Iterator[List[str]]:
    """Stream whitespace-tokenized lines from a UTF-8 text file."""
    with io.open(path, "r", encoding="utf-8") as f:
        for line in f:
            yield line.split()


def write_ngrams(
    sentences: Iterable[Sequence[str]],
    order: int,
    vocab: Vocabulary,
    path: Union[str, Path],
    numberize: bool = True,
    add_start_stop: bool = True,
    ngramize: bool = True,
) -> int:
    """
    Write every n-gram of every sentence as one whitespace-separated line.

    Returns the number of n-grams written.
    """
    written = 0
    with io.open(path, "w", encoding="utf-8") as f:
        for i, words in enumerate(sentences):
            if i % 100000 == 0:
                logger.info(f"{i} sentences...")
            for ngram in preprocess_words(words, order, vocab, numberize, add_start_stop, ngramize):
                f.write(" ".join(str(t) for t in ngram) + "\n")
                written += 1
    logger.info(f"Wrote {written} {order}-grams to {path}")
    return written

# n-gram padding and windowing
import pytest

from ngram_scoring.preprocess.preprocess import (
    NgramArityError,
    pad_sequence,
    preprocess_words,
    sliding_windows,
    write_ngrams,
)
from ngram_scoring.vocabulary.vocabulary import Vocabulary


def test_pad_and_window_sentence():
    padded = pad_sequence([10, 11, 12, 13], 4, 1, 2)
    assert padded == [1, 1, 1, 10, 11, 12, 13, 2]

    windows = list(sliding_windows(padded, 4))
    assert len(windows) == 5
    assert windows[0] == [1, 1, 1, 10]
    assert windows[-1] == [11, 12, 13, 2]
    assert all(len(w) == 4 for w in windows)


@pytest.mark.parametrize("length,order", [(0, 1), (0, 3), (1, 2), (7, 3), (5, 5)])
def test_window_count(length, order):
    padded = pad_sequence(list(range(length)), order, -1, -2)
    assert len(padded) == length + order
    assert len(list(sliding_windows(padded, order))) == length + 1


def test_windows_overlap_left_to_right():
    windows = list(sliding_windows([1, 2, 3, 4, 5], 3))
    assert windows == [[1, 2, 3], [2, 3, 4], [3, 4, 5]]


def test_short_sequence_has_no_windows():
    assert list(sliding_windows([1, 2], 3)) == []


def test_bad_order():
    with pytest.raises(ValueError):
        pad_sequence([1], 0, 0, 0)


def test_preprocess_numberizes_words():
    vocab = Vocabulary(["<s>", "</s>", "<null>", "<unk>", "the", "cat"])
    ngrams = preprocess_words("the cat sat".split(), 3, vocab)
    assert ngrams[0] == [0, 0, 4]
    assert ngrams[2] == [4, 5, vocab.unk_id]
    assert ngrams[-1] == [5, vocab.unk_id, 1]


def test_preprocess_single_ngram_lines():
    vocab = Vocabulary(["<s>", "</s>"])
    assert preprocess_words(["7", "8", "9"], 3, vocab, numberize=False, ngramize=False) == [[7, 8, 9]]

    with pytest.raises(NgramArityError) as err:
        preprocess_words(["7", "8"], 3, vocab, numberize=False, ngramize=False)
    assert err.value.expected == 3
    assert err.value.found == 2


def test_preprocess_without_padding():
    vocab = Vocabulary([])
    ngrams = preprocess_words(["1", "2", "3", "4"], 3, vocab, numberize=False, add_start_stop=False)
    assert ngrams == [[1, 2, 3], [2, 3, 4]]


def test_write_ngrams(tmp_path):
    vocab = Vocabulary(["<s>", "</s>", "<null>", "<unk>", "a", "b"])
    out = tmp_path / "ngrams.txt"
    written = write_ngrams([["a", "b"], ["b"]], 2, vocab, out)

    lines = out.read_text(encoding="utf-8").splitlines()
    assert written == len(lines) == 5
    assert lines[0].split() == ["0", "4"]
    assert lines[2].split() == ["5", "1"]

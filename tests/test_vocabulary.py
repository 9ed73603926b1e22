# vocabulary lookups
from ngram_scoring.vocabulary.vocabulary import RESERVED_TOKENS, Vocabulary


def test_unknown_words_map_to_unk():
    vocab = Vocabulary(["<s>", "</s>", "<null>", "<unk>", "hello"])
    assert vocab.lookup_word("hello") == 4
    assert vocab.lookup_word("world") == vocab.unk_id == 3
    assert vocab.size() == len(vocab) == 5


def test_unk_is_appended():
    vocab = Vocabulary(["a", "b", "a"])
    assert vocab.words == ["a", "b", "<unk>"]
    assert vocab.lookup_word("zzz") == 2
    # missing reserved symbols fall back to unk as well
    assert vocab.start_id == vocab.unk_id


def test_special_ids():
    vocab = Vocabulary(RESERVED_TOKENS)
    assert (vocab.start_id, vocab.stop_id, vocab.null_id, vocab.unk_id) == (0, 1, 2, 3)


def test_build_keeps_most_frequent():
    sentences = [["b", "a", "b"], ["c", "b", "a"], ["<s>"]]
    vocab = Vocabulary.build(sentences, size=2)
    assert vocab.words == RESERVED_TOKENS + ["b", "a"]
    assert vocab.lookup_word("c") == vocab.unk_id


def test_save_load(tmp_path):
    vocab = Vocabulary.build([["x", "y", "y"]])
    path = tmp_path / "vocab.txt"
    vocab.save(path)
    assert Vocabulary.load(path) == vocab

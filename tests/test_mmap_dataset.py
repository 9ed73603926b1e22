# memory-mapped dataset construction
import os

import numpy as np
import pytest
import torch
from torch.utils.data import DataLoader

from ngram_scoring.mmap_dataset.mmap_dataset import (
    DatasetError,
    NgramDataset,
    build,
    build_from_corpus,
    count_lines,
    detect_order,
    open_dataset,
)


def write_corpus(path, lines):
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


def test_build_round_trip(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "4 5 6", "7 8 9"])
    out = tmp_path / "train.mmap"

    assert build_from_corpus(corpus, out) == (3, 3)

    flat = np.load(out, mmap_mode="r")
    assert flat.tolist() == [1, 2, 3, 4, 5, 6, 7, 8, 9]
    rows = open_dataset(out, 3)
    assert rows.shape == (3, 3)
    assert rows[1].tolist() == [4, 5, 6]


def test_slack_is_reclaimed(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2", "3 4"])
    out = tmp_path / "train.mmap"
    build(corpus, out, 2, 2)

    flat = np.load(out, mmap_mode="r")
    assert os.path.getsize(out) == flat.offset + flat.nbytes
    assert flat.dtype == np.int32


def test_signed_values_and_extra_whitespace(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["-1  0\t2147483647", " 3 -2147483648 5 "])
    out = tmp_path / "train.mmap"
    build_from_corpus(corpus, out)
    assert open_dataset(out, 3).tolist() == [[-1, 0, 2147483647], [3, -2147483648, 5]]


def test_count_and_order(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3 4", "5 6 7 8"])
    assert count_lines(corpus) == 2
    assert detect_order(corpus) == 4

    # last record without a trailing newline still counts
    unterminated = tmp_path / "partial.txt"
    unterminated.write_text("1 2\n3 4", encoding="utf-8")
    assert count_lines(unterminated) == 2


def test_only_newline_separates_records(tmp_path):
    corpus = tmp_path / "train.txt"
    corpus.write_bytes(b"1 2\r\n3 4\r\n")
    assert count_lines(corpus) == 2
    assert detect_order(corpus) == 2

    out = tmp_path / "train.mmap"
    build_from_corpus(corpus, out)
    assert open_dataset(out, 2).tolist() == [[1, 2], [3, 4]]

    # a lone carriage return stays inside its line
    mixed = tmp_path / "mixed.txt"
    mixed.write_bytes(b"1 2\r3 4\n5 6 7 8\n")
    assert count_lines(mixed) == 2
    assert detect_order(mixed) == 4


def test_failed_sizing_leaves_no_output(tmp_path, monkeypatch):
    import ngram_scoring.mmap_dataset.mmap_dataset as mmap_dataset

    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3"])
    out = tmp_path / "train.mmap"

    def no_space(f, num_values):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(mmap_dataset, "_write_header", no_space)
    with pytest.raises(OSError):
        build(corpus, out, 3, 1)
    assert not out.exists()


def test_arity_mismatch_is_fatal(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "1 2", "4 5 6"])
    out = tmp_path / "train.mmap"

    with pytest.raises(DatasetError, match="expected 3 fields in instance, found 2"):
        build_from_corpus(corpus, out)
    assert not out.exists()


def test_non_integer_field_is_fatal(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "4 five 6"])
    out = tmp_path / "train.mmap"

    with pytest.raises(DatasetError, match="line 2"):
        build_from_corpus(corpus, out)
    assert not out.exists()


def test_out_of_range_field_is_fatal(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "4 99999999999 6"])
    out = tmp_path / "train.mmap"

    with pytest.raises(DatasetError):
        build_from_corpus(corpus, out)
    assert not out.exists()


def test_existing_output_is_never_overwritten(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3"])
    out = tmp_path / "train.mmap"
    out.write_bytes(b"precious")

    with pytest.raises(FileExistsError):
        build_from_corpus(corpus, out)
    with pytest.raises(FileExistsError):
        build(corpus, out, 3, 1)
    assert out.read_bytes() == b"precious"


def test_empty_corpus(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", [])
    with pytest.raises(DatasetError):
        build_from_corpus(corpus, tmp_path / "train.mmap")
    assert not (tmp_path / "train.mmap").exists()


def test_missing_input(tmp_path):
    with pytest.raises(FileNotFoundError):
        build_from_corpus(tmp_path / "nope.txt", tmp_path / "train.mmap")


def test_ngram_dataset(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "4 5 6", "7 8 9"])
    out = tmp_path / "train.mmap"
    build_from_corpus(corpus, out)

    ds = NgramDataset(out, 3)
    assert len(ds) == 3
    context, target = ds[2]
    assert context.tolist() == [7, 8]
    assert int(target) == 9

    contexts, targets = next(iter(DataLoader(ds, batch_size=3)))
    assert contexts.shape == (3, 2)
    assert contexts.dtype == torch.long
    assert targets.tolist() == [3, 6, 9]


def test_open_dataset_checks_order(tmp_path):
    corpus = write_corpus(tmp_path / "train.txt", ["1 2 3", "4 5 6"])
    out = tmp_path / "train.mmap"
    build_from_corpus(corpus, out)
    with pytest.raises(DatasetError):
        open_dataset(out, 4)

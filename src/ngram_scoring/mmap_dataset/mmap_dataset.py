"""
Memory-mapped n-gram dataset
----------------------------
Converts a numberized n-gram corpus (one n-gram per line, whitespace
separated integers) into a flat int32 array on disk, so training can read
random rows without loading the corpus into memory.

File layout: a standard .npy header followed by count * order int32 values,
row-major (row i, column j at flat offset i * order + j). The n-gram order
is not stored and must be known by the reader.
"""

import io
import logging
import os
from pathlib import Path
from typing import Tuple, Union

import numpy as np
import torch
from torch.utils.data import Dataset

logger = logging.getLogger(__name__)

DTYPE = np.dtype("<i4")
INT_MIN, INT_MAX = int(np.iinfo(DTYPE).min), int(np.iinfo(DTYPE).max)
# headroom reserved while writing, reclaimed by the final truncate
SLACK_BYTES = 1024 * 1024
PROGRESS_EVERY = 100000

PathLike = Union[str, Path]


class DatasetError(ValueError):
    """The corpus violates the one-n-gram-per-line contract."""


def count_lines(path: PathLike) -> int:
    """Count the records of a text file in one streaming pass."""
    lines = 0
    with io.open(path, "r", encoding="utf-8", newline="\n") as f:
        for _ in f:
            if lines % PROGRESS_EVERY == 0:
                logger.info(f"{lines}...")
            lines += 1
    return lines


def detect_order(path: PathLike) -> int:
    """Field count of the first line, taken as the order of the whole corpus."""
    with io.open(path, "r", encoding="utf-8", newline="\n") as f:
        first = f.readline()
    return len(first.split())


def _write_header(f, num_values: int) -> int:
    header = {
        "descr": np.lib.format.dtype_to_descr(DTYPE),
        "fortran_order": False,
        "shape": (num_values,),
    }
    np.lib.format.write_array_header_1_0(f, header)
    return f.tell()


def _parse_row(line: str, order: int, line_no: int):
    fields = line.split()
    if len(fields) != order:
        raise DatasetError(
            f"line {line_no}: expected {order} fields in instance, found {len(fields)}"
        )
    try:
        row = [int(x) for x in fields]
    except ValueError as e:
        raise DatasetError(f"line {line_no}: {e}") from e
    for x in row:
        if not INT_MIN <= x <= INT_MAX:
            raise DatasetError(f"line {line_no}: {x} does not fit in {DTYPE.name}")
    return row


def build(input_path: PathLike, output_path: PathLike, order: int, count: int) -> None:
    """
    Write `count` n-grams of size `order` from `input_path` into a new
    memory-mapped file at `output_path`.

    The output is created exclusively: an existing file raises FileExistsError
    and is left untouched. Any malformed line raises DatasetError and the
    partially written output is removed.
    """
    if count < 1:
        raise DatasetError(f"no n-grams found in {input_path}")
    if order < 1:
        raise DatasetError(f"n-gram order must be positive, got {order}")

    num_values = count * order
    payload_bytes = num_values * DTYPE.itemsize

    # "xb" fails if the path exists, so a previous dataset is never overwritten
    f = io.open(output_path, "xb")
    try:
        with f:
            offset = _write_header(f, num_values)
            f.truncate(offset + payload_bytes + SLACK_BYTES)

        vec = np.memmap(output_path, dtype=DTYPE, mode="r+", offset=offset, shape=(num_values,))
        logger.info(f"The size of mmaped vec is {vec.size}")
        try:
            _fill(vec, input_path, order, count)
            vec.flush()
        finally:
            del vec
        # shrink to fit
        os.truncate(output_path, offset + payload_bytes)
    except BaseException:
        os.remove(output_path)
        raise


def _fill(vec: np.memmap, input_path: PathLike, order: int, count: int) -> None:
    i = 0
    with io.open(input_path, "r", encoding="utf-8", newline="\n") as f:
        for line in f:
            if i % PROGRESS_EVERY == 0:
                logger.info(f"{i}...")
            if i >= count:
                raise DatasetError(f"{input_path} has more than the {count} counted lines")
            row = _parse_row(line, order, i + 1)
            vec[i * order:(i + 1) * order] = row
            i += 1
    if i != count:
        raise DatasetError(f"{input_path} has {i} lines, expected {count}")


def build_from_corpus(input_path: PathLike, output_path: PathLike) -> Tuple[int, int]:
    """Detect the order, count the lines and build. Returns (count, order)."""
    if not os.path.exists(input_path):
        raise FileNotFoundError(f"{input_path} does not exist!")
    if os.path.exists(output_path):
        raise FileExistsError(f"{output_path} already exists")

    order = detect_order(input_path)
    logger.info("counting number of lines:")
    count = count_lines(input_path)
    logger.info(f"{count} {order}-grams")
    logger.info("writing mmap file:")
    build(input_path, output_path, order, count)
    return count, order


def open_dataset(path: PathLike, order: int) -> np.ndarray:
    """Map a built dataset read-only as a (count, order) array."""
    flat = np.load(path, mmap_mode="r")
    if flat.ndim != 1 or flat.size % order != 0:
        raise DatasetError(f"{path} holds {flat.size} values, not a multiple of order {order}")
    return flat.reshape(-1, order)


class NgramDataset(Dataset):
    """(context, target) pairs read lazily from a memory-mapped n-gram file."""

    def __init__(self, path: PathLike, order: int):
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"{self.path} not found! Run ngram-build-mmap first.")
        self.order = order
        self.rows = open_dataset(self.path, order)
        logger.info(f"Loaded {self.path}, {len(self.rows)} {order}-grams")

    def __len__(self):
        return len(self.rows)

    def __getitem__(self, idx):
        row = torch.from_numpy(np.array(self.rows[idx], dtype=np.int64))
        return row[:-1], row[-1]

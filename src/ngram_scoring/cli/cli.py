#!/usr/bin/env python3
"""
Command-line tools
------------------
ngram-prepare     text corpus -> numberized n-gram file (one n-gram per line)
ngram-build-mmap  numberized n-gram file -> memory-mapped dataset for training
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from ngram_scoring.mmap_dataset.mmap_dataset import build_from_corpus
from ngram_scoring.preprocess.preprocess import read_sentences, write_ngrams
from ngram_scoring.vocabulary.vocabulary import Vocabulary

logger = logging.getLogger("ngram_scoring")


def setup_logging(log_file: Optional[str] = None) -> None:
    """Setup logging system"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def _log_command_line(args: argparse.Namespace) -> None:
    logger.info("Command line: " + " ".join(sys.argv))
    for name, value in vars(args).items():
        logger.info(f"{name} Value: {value}")


def build_mmap_main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Take an ngramized and numberized file and create a memory mapped file "
                    "(for training without loading all training data into memory)."
    )
    parser.add_argument("--input_file", type=str, required=True,
                        help="Input training data (numberized n-grams).")
    parser.add_argument("--output_file", type=str, required=True,
                        help="Output training data (memory mapped file). Must not exist.")
    parser.add_argument("--log_file", type=str, default=None,
                        help="Also write log messages to this file")
    args = parser.parse_args(argv)

    setup_logging(args.log_file)
    _log_command_line(args)

    try:
        count, order = build_from_corpus(args.input_file, args.output_file)
    except (ValueError, OSError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    logger.info(f"Wrote {count} {order}-grams to {args.output_file}")
    return 0


def prepare_main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert a text corpus into numberized n-grams.")
    parser.add_argument("--train_text", type=str, required=True,
                        help="Training text, one tokenized sentence per line")
    parser.add_argument("--ngram_size", type=int, required=True,
                        help="n-gram order")
    parser.add_argument("--output_file", type=str, required=True,
                        help="Output file of numberized n-grams")
    parser.add_argument("--vocab_size", type=int, default=None,
                        help="Keep only the most frequent words when building the vocabulary")
    parser.add_argument("--vocab_file", type=str, default=None,
                        help="Use this vocabulary instead of building one")
    parser.add_argument("--write_vocab", type=str, default=None,
                        help="Save the vocabulary used to this file")
    parser.add_argument("--no_numberize", action="store_true",
                        help="Tokens are already integer ids")
    parser.add_argument("--no_add_start_stop", action="store_true",
                        help="Do not pad sentences with <s> and </s>")
    parser.add_argument("--no_ngramize", action="store_true",
                        help="Each line already holds exactly one n-gram")
    parser.add_argument("--log_file", type=str, default=None,
                        help="Also write log messages to this file")
    args = parser.parse_args(argv)

    setup_logging(args.log_file)
    _log_command_line(args)

    try:
        if args.vocab_file:
            vocab = Vocabulary.load(args.vocab_file)
        else:
            vocab = Vocabulary.build(read_sentences(args.train_text), args.vocab_size)
        logger.info(f"Vocabulary size: {vocab.size()}")
        if args.write_vocab:
            vocab.save(args.write_vocab)

        write_ngrams(
            read_sentences(args.train_text),
            args.ngram_size,
            vocab,
            args.output_file,
            numberize=not args.no_numberize,
            add_start_stop=not args.no_add_start_stop,
            ngramize=not args.no_ngramize,
        )
    except (ValueError, OSError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    return 0


if __name__ == "__main__":
    build_mmap_main()

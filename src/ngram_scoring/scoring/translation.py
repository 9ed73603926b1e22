from typing import Optional

from ngram_scoring.scoring.scoring import (
    ScoringConfig,
    ScoringEngine,
    is_ascii_digit,
    map_digit_chars,
)
from ngram_scoring.vocabulary.vocabulary import Vocabulary


class TranslationScorer(ScoringEngine):
    """
    Scoring engine for translation models, whose input (source + target context)
    and output vocabularies are set independently.

    Adds lookups on character spans of a larger string, so a decoder can look up
    tokens of a sentence without slicing out every word first.
    """

    def set_input_vocabulary(self, vocab: Vocabulary) -> None:
        if vocab.size() != self.shared.network.input_vocab_size:
            raise ValueError(
                f"input vocabulary has {vocab.size()} words, "
                f"network expects {self.shared.network.input_vocab_size}"
            )
        self.input_vocab = vocab
        self.start = vocab.start_id
        self.null = vocab.null_id

    def set_output_vocabulary(self, vocab: Vocabulary) -> None:
        if vocab.size() != self.shared.network.output_vocab_size:
            raise ValueError(
                f"output vocabulary has {vocab.size()} words, "
                f"network expects {self.shared.network.output_vocab_size}"
            )
        self.output_vocab = vocab

    def get_input_vocabulary(self) -> Vocabulary:
        return self.input_vocab

    def get_output_vocabulary(self) -> Vocabulary:
        return self.output_vocab

    def spawn(self, config: Optional[ScoringConfig] = None) -> "TranslationScorer":
        engine = super().spawn(config)
        engine.set_input_vocabulary(self.input_vocab)
        engine.set_output_vocabulary(self.output_vocab)
        return engine

    def _lookup_span(self, text: str, start: int, end: int, vocab: Vocabulary,
                     config: Optional[ScoringConfig]) -> int:
        if not 0 <= start <= end <= len(text):
            raise IndexError(f"span [{start}, {end}) outside a string of length {len(text)}")
        placeholder = (config or self.config).map_digits
        if placeholder:
            for i in range(start, end):
                if is_ascii_digit(text[i]):
                    # everything before the first digit is kept as is
                    return vocab.lookup_word(text[start:i] + map_digit_chars(text[i:end], placeholder))
        return vocab.lookup_word(text[start:end])

    def lookup_input_span(self, text: str, start: int, end: int,
                          config: Optional[ScoringConfig] = None) -> int:
        return self._lookup_span(text, start, end, self.input_vocab, config)

    def lookup_output_span(self, text: str, start: int, end: int,
                           config: Optional[ScoringConfig] = None) -> int:
        return self._lookup_span(text, start, end, self.output_vocab, config)

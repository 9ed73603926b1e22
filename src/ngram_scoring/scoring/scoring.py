"""
N-gram scoring
--------------
Serves log-probabilities of n-grams from a trained NeuralNGramModel.

- SharedModel: vocabularies + network + lookup cache, shared by every engine
  that scores against the same model (one engine per decoding thread)
- ScoringEngine: per-thread front end with its own working n-gram and config;
  pads short histories, maps digits, probes the cache, falls back to the network
"""

import logging
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import torch
import torch.nn.functional as F

from ngram_scoring.cache.cache import LookupCache
from ngram_scoring.neural_ngram.neural_ngram import NeuralNGramModel
from ngram_scoring.vocabulary.vocabulary import Vocabulary

logger = logging.getLogger(__name__)


def is_ascii_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def map_digit_chars(word: str, placeholder: Optional[str]) -> str:
    """Replace every ASCII digit of `word` with `placeholder` ("room42" -> "room##")."""
    if not placeholder:
        return word
    return "".join(placeholder if is_ascii_digit(ch) else ch for ch in word)


def assemble_ngram(tokens: Sequence[int], order: int, start: int, null: int) -> List[int]:
    """
    Fit a token history into exactly `order` ids.

    Longer histories keep their last `order` tokens. Shorter ones are padded on
    the left: with <s> when the history itself begins with <s> (the sentence
    really starts there), otherwise with <null> (the history was truncated).
    """
    n = len(tokens)
    pad = start if n and tokens[0] == start else null
    ngram = []
    for i in range(order):
        j = i - order + n
        ngram.append(int(tokens[j]) if j >= 0 else pad)
    return ngram


@dataclass(frozen=True)
class ScoringConfig:
    """
    Per-engine scoring options.

    normalization: normalize over the full output vocabulary (log-softmax)
        instead of trusting the raw output score.
    log_base: report log-probabilities in this base (natural log when None).
    map_digits: placeholder character that replaces digits before vocabulary
        lookup (no mapping when None).
    width: maximum number of n-grams per batched lookup.
    """
    normalization: bool = False
    log_base: Optional[float] = None
    map_digits: Optional[str] = None
    width: int = 1

    def __post_init__(self):
        if self.log_base is not None and (self.log_base <= 0 or self.log_base == 1):
            raise ValueError(f"log_base must be positive and != 1, got {self.log_base}")
        if self.map_digits is not None and len(self.map_digits) != 1:
            raise ValueError(f"map_digits must be a single character, got {self.map_digits!r}")
        if self.width < 1:
            raise ValueError(f"width must be at least 1, got {self.width}")

    @property
    def weight(self) -> float:
        return 1.0 if self.log_base is None else 1.0 / math.log(self.log_base)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "ScoringConfig":
        return cls(
            normalization=config.get("normalization", False),
            log_base=config.get("log_base"),
            map_digits=config.get("map_digits"),
            width=config.get("width", 1),
        )

    def replace(self, **changes) -> "ScoringConfig":
        return replace(self, **changes)


class SharedModel:
    """Model state shared across engines. Only the cache is mutated after construction."""

    def __init__(self, input_vocab: Vocabulary, output_vocab: Vocabulary,
                 network: NeuralNGramModel, cache_size: int = 0):
        if network.input_vocab_size != input_vocab.size():
            raise ValueError(
                f"input vocabulary has {input_vocab.size()} words, "
                f"network expects {network.input_vocab_size}"
            )
        if network.output_vocab_size != output_vocab.size():
            raise ValueError(
                f"output vocabulary has {output_vocab.size()} words, "
                f"network expects {network.output_vocab_size}"
            )
        self.input_vocab = input_vocab
        self.output_vocab = output_vocab
        # inference only: disables dropout so single and batched scores agree
        self.network = network.eval()
        self.ngram_size = network.ngram_size
        self.cache = LookupCache(self.ngram_size, cache_size)

    def save(self, path: Union[str, Path]) -> None:
        torch.save({
            "hyperparameters": self.network.hyperparameters(),
            "state_dict": self.network.state_dict(),
            "input_words": self.input_vocab.words,
            "output_words": self.output_vocab.words,
        }, path)

    @classmethod
    def load(cls, path: Union[str, Path], cache_size: int = 0, map_location="cpu") -> "SharedModel":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model not found: {path}")
        checkpoint = torch.load(path, map_location=map_location)
        network = NeuralNGramModel(**checkpoint["hyperparameters"])
        network.load_state_dict(checkpoint["state_dict"])
        logger.info(f"Loaded {network.ngram_size}-gram model from {path}")
        return cls(
            Vocabulary(checkpoint["input_words"]),
            Vocabulary(checkpoint["output_words"]),
            network,
            cache_size=cache_size,
        )


class ScoringEngine:
    """
    Scores n-grams against a SharedModel.

    An engine is used by one thread at a time. For concurrent decoding give each
    thread its own engine via spawn(); they all share the model and the cache.
    """

    def __init__(self, shared: SharedModel, config: Optional[ScoringConfig] = None):
        self.shared = shared
        self.config = config or ScoringConfig()
        self.input_vocab = shared.input_vocab
        self.output_vocab = shared.output_vocab
        self.start = self.input_vocab.start_id
        self.null = self.input_vocab.null_id
        # working n-gram for lookup_from_staging / lookup_context
        self.ngram = np.zeros(shared.ngram_size, dtype=np.int64)

    @classmethod
    def from_file(cls, path: Union[str, Path], cache_size: int = 0,
                  config: Optional[ScoringConfig] = None) -> "ScoringEngine":
        return cls(SharedModel.load(path, cache_size=cache_size), config)

    def spawn(self, config: Optional[ScoringConfig] = None) -> "ScoringEngine":
        """New engine on the same shared model, with its own buffer and config."""
        return type(self)(self.shared, config or self.config)

    @property
    def order(self) -> int:
        return self.shared.ngram_size

    def get_vocabulary(self) -> Vocabulary:
        return self.input_vocab

    # -------------------- vocabulary lookups --------------------

    def lookup_input_word(self, word: str, config: Optional[ScoringConfig] = None) -> int:
        placeholder = (config or self.config).map_digits
        return self.input_vocab.lookup_word(map_digit_chars(word, placeholder))

    def lookup_word(self, word: str, config: Optional[ScoringConfig] = None) -> int:
        return self.lookup_input_word(word, config)

    def lookup_output_word(self, word: str, config: Optional[ScoringConfig] = None) -> int:
        placeholder = (config or self.config).map_digits
        return self.output_vocab.lookup_word(map_digit_chars(word, placeholder))

    # -------------------- n-gram lookups --------------------

    def lookup_ngram(self, ngram: Sequence[int], config: Optional[ScoringConfig] = None) -> float:
        """
        Log-probability of the last id of `ngram` given the ids before it,
        scaled to the configured log base.
        """
        config = config or self.config
        key = [int(t) for t in ngram]
        if len(key) != self.order:
            raise ValueError(f"expected a {self.order}-gram, got {len(key)} ids")

        # the cache holds natural-log scores, one variant per normalization mode
        variant = int(config.normalization)
        cached = self.shared.cache.lookup(key, variant)
        if cached is not None:
            return cached * config.weight

        network = self.shared.network
        output = key[-1]
        contexts = torch.tensor([key[:-1]], dtype=torch.long)

        # intra-op threads don't help a single column and can hurt a lot
        with torch.no_grad(), network.single_threaded():
            hidden = network.forward_propagate(contexts)
            if config.normalization:
                scores = network.score_distribution(hidden)[0]
                log_prob = float(scores[output] - torch.logsumexp(scores, dim=0))
            else:
                log_prob = network.score_token(hidden, output, 0)

        self.shared.cache.store(key, log_prob, variant)
        return log_prob * config.weight

    def lookup_ngrams(self, ngrams, config: Optional[ScoringConfig] = None) -> np.ndarray:
        """
        Score a batch of n-grams, shape (batch_size, order), in one network pass.

        Batched lookups bypass the cache. Returns a float64 array of batch_size
        log-probabilities.
        """
        config = config or self.config
        batch = torch.as_tensor(np.asarray(ngrams, dtype=np.int64))
        if batch.dim() != 2 or batch.size(1) != self.order:
            raise ValueError(f"expected a (batch_size, {self.order}) batch, got {tuple(batch.shape)}")
        if batch.size(0) > config.width:
            raise ValueError(f"batch of {batch.size(0)} exceeds width {config.width}")

        network = self.shared.network
        contexts, outputs = batch[:, :-1], batch[:, -1]
        with torch.no_grad():
            hidden = network.forward_propagate(contexts)
            if config.normalization:
                # softmax over the whole batch at once
                log_probs = F.log_softmax(network.score_distribution(hidden), dim=-1)
                scores = log_probs.gather(1, outputs.unsqueeze(1)).squeeze(1).double()
            else:
                scores = torch.tensor(
                    [network.score_token(hidden, int(o), j) for j, o in enumerate(outputs)],
                    dtype=torch.float64,
                )
        return (config.weight * scores).numpy()

    def lookup_context(self, tokens: Sequence[int], config: Optional[ScoringConfig] = None) -> float:
        """Score a token history of any length, padding or trimming it to the model order."""
        self.ngram[:] = assemble_ngram(tokens, self.order, self.start, self.null)
        return self.lookup_ngram(self.ngram, config)

    @property
    def staging_ngram(self) -> np.ndarray:
        """The engine's working n-gram; fill it in place, then call lookup_from_staging()."""
        return self.ngram

    def lookup_from_staging(self, config: Optional[ScoringConfig] = None) -> float:
        return self.lookup_ngram(self.ngram, config)

    # -------------------- cache --------------------

    def set_cache(self, cache_size: int) -> None:
        self.shared.cache.resize(cache_size)

    def cache_hit_rate(self) -> float:
        return self.shared.cache.hit_rate

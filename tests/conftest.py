import pytest
import torch

from ngram_scoring.neural_ngram.neural_ngram import NeuralNGramModel
from ngram_scoring.scoring.scoring import SharedModel
from ngram_scoring.vocabulary.vocabulary import RESERVED_TOKENS, Vocabulary

WORDS = RESERVED_TOKENS + ["the", "cat", "sat", "room##", "on", "mat"]


@pytest.fixture
def vocab():
    return Vocabulary(WORDS)


@pytest.fixture
def network(vocab):
    torch.manual_seed(0)
    return NeuralNGramModel(vocab.size(), vocab.size(), 3, embedding_dim=8, hidden_dim=16)


@pytest.fixture
def shared(vocab, network):
    return SharedModel(vocab, vocab, network, cache_size=64)

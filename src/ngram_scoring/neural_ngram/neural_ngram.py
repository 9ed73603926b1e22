import threading
from contextlib import contextmanager

import torch
import torch.nn as nn

# torch.set_num_threads is process-wide: overlapping single_threaded() scopes
# share one saved count, restored when the last of them exits
_threads_lock = threading.Lock()
_single_threaded_depth = 0
_saved_num_threads = None


class NeuralNGramModel(nn.Module):
    def __init__(self, input_vocab_size, output_vocab_size, ngram_size,
                 embedding_dim=128, hidden_dim=256, dropout=0.1):
        """
        Args:
            input_vocab_size (int): Number of context tokens the embedding knows.
            output_vocab_size (int): Number of tokens that can be predicted.
            ngram_size (int): n-gram order; the model sees ngram_size - 1 context tokens.
            embedding_dim (int): Size of each embedding vector.
            hidden_dim (int): Size of the hidden layer in the MLP.
            dropout (float): Dropout probability for regularization.
        """
        super().__init__()
        if ngram_size < 2:
            raise ValueError(f"ngram_size must be at least 2, got {ngram_size}")
        self.input_vocab_size = input_vocab_size
        self.output_vocab_size = output_vocab_size
        self.ngram_size = ngram_size
        self.context_size = ngram_size - 1
        self.embedding_dim = embedding_dim
        self.hidden_dim = hidden_dim

        self.embedding = nn.Embedding(input_vocab_size, embedding_dim)
        self.dropout = nn.Dropout(dropout)
        self.hidden = nn.Sequential(
            nn.Linear(self.context_size * embedding_dim, hidden_dim),
            nn.GELU(),
            nn.Dropout(dropout),
        )
        self.output = nn.Linear(hidden_dim, output_vocab_size)

    def hyperparameters(self):
        return {
            "input_vocab_size": self.input_vocab_size,
            "output_vocab_size": self.output_vocab_size,
            "ngram_size": self.ngram_size,
            "embedding_dim": self.embedding_dim,
            "hidden_dim": self.hidden_dim,
        }

    def forward_propagate(self, contexts):
        """
        Args:
            contexts (Tensor): shape (batch_size, context_size), token IDs for context

        Returns:
            hidden (Tensor): shape (batch_size, hidden_dim)
        """
        # embed each token in the context
        emb = self.embedding(contexts)  # (batch_size, context_size, emb_dim)
        # flatten context embeddings into a single vector per example
        emb = emb.view(emb.size(0), -1)  # (batch_size, context_size * emb_dim)
        emb = self.dropout(emb)
        return self.hidden(emb)

    def score_token(self, hidden, token_id, batch_index=0):
        """Unnormalized log score of one output token for one column of the batch."""
        weight = self.output.weight[token_id]  # (hidden_dim,)
        return float(hidden[batch_index] @ weight + self.output.bias[token_id])

    def score_distribution(self, hidden):
        """Unnormalized log scores over the whole output vocabulary, (batch_size, vocab_size)."""
        return self.output(hidden)

    def forward(self, x):
        """
        Args:
            x (Tensor): shape (batch_size, context_size), token IDs for context

        Returns:
            logits (Tensor): shape (batch_size, output_vocab_size)
        """
        return self.score_distribution(self.forward_propagate(x))

    @contextmanager
    def single_threaded(self):
        """
        Run the enclosed calls on one intra-op thread. The count in effect before
        the outermost scope is restored once every overlapping scope has exited.
        """
        global _single_threaded_depth, _saved_num_threads
        with _threads_lock:
            if _single_threaded_depth == 0:
                _saved_num_threads = torch.get_num_threads()
                torch.set_num_threads(1)
            _single_threaded_depth += 1
        try:
            yield self
        finally:
            with _threads_lock:
                _single_threaded_depth -= 1
                if _single_threaded_depth == 0:
                    torch.set_num_threads(_saved_num_threads)
                    _saved_num_threads = None

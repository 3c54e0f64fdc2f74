from .nosana_tokens import NOS, SOL, SolanaToken, get_token, load_extra_tokens

__all__ = ["NOS", "SOL", "SolanaToken", "get_token", "load_extra_tokens"]

"""
Policy Module - Black Box Interface

Purpose: Decide which submitted commands may run, and exactly how
Interface: CommandPolicy.build(), CommandPolicy.validate(), tokenize()
Hidden: Quoting rules, allow-lists, workspace path confinement

Can be replaced with a different allow-list without touching execution.
"""

from .command_policy import CommandPolicy, CommandRejectedError, PolicySettings, SpawnSpec
from .tokenizer import Token, TokenizeError, TokenKind, tokenize

__all__ = [
    "CommandPolicy",
    "CommandRejectedError",
    "PolicySettings",
    "SpawnSpec",
    "Token",
    "TokenKind",
    "TokenizeError",
    "tokenize",
]

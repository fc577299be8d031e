"""Data models for the ROMnibus catalog."""

from .config import CatalogConfig, GrammarProfile
from .game import GameRecord, RomDescriptor, SignatureGame
from .progress import BuildSummary

__all__ = [
    "BuildSummary",
    "CatalogConfig",
    "GameRecord",
    "GrammarProfile",
    "RomDescriptor",
    "SignatureGame",
]

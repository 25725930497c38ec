"""
Artist/title normalization for cross-source deduplication.

Dedup keys are case-insensitive and ignore featured-artist credits in the
artist field, so "Drake feat. Future - Life Is Good" and
"drake - life is good" collapse onto the same key.
"""

from __future__ import annotations

# Order does not matter: truncation happens at the earliest match.
FEAT_SEPARATORS: tuple[str, ...] = (" feat.", " ft.", " featuring ", " feat ", " ft ")

KEY_SEPARATOR = " - "


def normalize_artist(artist: str) -> str:
    """
    Reduce an artist credit to its lowercased primary artist.

    Args:
        artist: Raw artist string from a chart source

    Returns:
        Trimmed, lowercased primary artist without featured-artist suffixes
    """
    a = artist.strip().lower()

    cut = len(a)
    for sep in FEAT_SEPARATORS:
        idx = a.find(sep)
        # idx == 0 would leave an empty artist; keep the string intact then
        if 0 < idx < cut:
            cut = idx

    return a[:cut].strip()


def normalize_title(title: str) -> str:
    """Trim and lowercase a track title."""
    return title.strip().lower()


def normalize_track_key(artist: str, title: str) -> str:
    """Build the dedup key ``"<primary artist> - <title>"``."""
    return normalize_artist(artist) + KEY_SEPARATOR + normalize_title(title)

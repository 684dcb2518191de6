"""Setlist source providers (venue lineups for the lineup resolver)."""

from src.providers.setlist.setlist_fm_provider import SetlistFmProvider

__all__ = ["SetlistFmProvider"]

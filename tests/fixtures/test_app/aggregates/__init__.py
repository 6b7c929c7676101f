from .playlist import LenientPlaylist, Playlist

__all__ = ["LenientPlaylist", "Playlist"]

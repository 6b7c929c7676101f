"""Test application package."""

from .aggregates.playlist import (
    AddTrack,
    AddTracks,
    CorruptedTrack,
    LenientPlaylist,
    NeverApplied,
    Playlist,
    PlaylistRenamed,
    RenamePlaylist,
    TrackAdded,
    TrackRemoved,
)
from .middleware.execution_tracker import ExecutionTracker

__all__ = [
    "AddTrack",
    "AddTracks",
    "CorruptedTrack",
    "ExecutionTracker",
    "LenientPlaylist",
    "NeverApplied",
    "Playlist",
    "PlaylistRenamed",
    "RenamePlaylist",
    "TrackAdded",
    "TrackRemoved",
]

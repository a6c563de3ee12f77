"""Channels, their repositories and the channel-backed artifact resolver."""

from .models import Channel, ChannelManifest, ManifestRef, RepositoryDef, Stream
from .resolver import ChannelArtifactResolver, ResolvedArtifactSet
from .session import ChannelSession

__all__ = [
    "Channel",
    "ChannelManifest",
    "ManifestRef",
    "RepositoryDef",
    "Stream",
    "ChannelArtifactResolver",
    "ResolvedArtifactSet",
    "ChannelSession",
]

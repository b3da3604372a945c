"""Local camera/microphone acquisition.

Capture itself is delegated to a pluggable ``MediaSource``. The acquirer maps
backend failures onto ``MediaError`` kinds and hands out a ``MediaHandle`` that
owns the resulting tracks until ``release()``.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Sequence

logger = logging.getLogger(__name__)


class TrackKind(str, enum.Enum):
    AUDIO = "audio"
    VIDEO = "video"


class MediaErrorKind(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    UNKNOWN = "unknown"


class MediaError(RuntimeError):
    """Raised when local media could not be acquired."""

    def __init__(self, kind: MediaErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class MediaTrack(Protocol):
    kind: TrackKind
    enabled: bool

    def stop(self) -> None: ...


class MediaSource(Protocol):
    async def open(self, *, audio: bool, video: bool) -> Sequence[MediaTrack]: ...


@dataclass(slots=True)
class SyntheticTrack:
    """Placeholder track used when no capture backend is wired in."""

    kind: TrackKind
    enabled: bool = True
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True


class SyntheticMediaSource:
    """Capture source that always succeeds with placeholder tracks."""

    async def open(self, *, audio: bool, video: bool) -> Sequence[MediaTrack]:
        tracks: list[MediaTrack] = []
        if audio:
            tracks.append(SyntheticTrack(TrackKind.AUDIO))
        if video:
            tracks.append(SyntheticTrack(TrackKind.VIDEO))
        return tracks


class MediaHandle:
    """Owns the captured tracks; ``release()`` stops all of them once."""

    def __init__(self, tracks: Sequence[MediaTrack]) -> None:
        self._tracks = list(tracks)
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    def _first(self, kind: TrackKind) -> MediaTrack | None:
        for track in self._tracks:
            if TrackKind(track.kind) is kind:
                return track
        return None

    def has_track(self, kind: TrackKind) -> bool:
        return self._first(kind) is not None

    def is_enabled(self, kind: TrackKind) -> bool:
        track = self._first(kind)
        return bool(track and track.enabled)

    def set_track_enabled(self, kind: TrackKind, enabled: bool) -> bool:
        """Enable or disable the first track of ``kind``; False if there is none."""

        if self._released:
            return False
        track = self._first(kind)
        if track is None:
            return False
        track.enabled = enabled
        return True

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        for track in self._tracks:
            try:
                track.stop()
            except Exception:  # noqa: BLE001 - keep stopping the remaining tracks
                logger.exception("Failed to stop %s track", track.kind)
        logger.debug("Released %d local media tracks", len(self._tracks))


class MediaAcquirer:
    """Request combined audio+video capture with a bounded wait."""

    def __init__(self, source: MediaSource, *, timeout: float = 30.0) -> None:
        self._source = source
        self._timeout = timeout

    async def acquire(self) -> MediaHandle:
        try:
            tracks = await asyncio.wait_for(self._source.open(audio=True, video=True), self._timeout)
        except MediaError:
            raise
        except asyncio.TimeoutError as exc:
            raise MediaError(
                MediaErrorKind.DEVICE_UNAVAILABLE,
                f"Camera and microphone did not respond within {self._timeout:g}s.",
            ) from exc
        except PermissionError as exc:
            raise MediaError(
                MediaErrorKind.PERMISSION_DENIED,
                "Camera and microphone access was denied. Check the permissions.",
            ) from exc
        except OSError as exc:
            raise MediaError(
                MediaErrorKind.DEVICE_UNAVAILABLE,
                "No camera or microphone is available.",
            ) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Media source failed: %s", exc)
            raise MediaError(MediaErrorKind.UNKNOWN, "Could not access camera and microphone.") from exc

        if not tracks:
            raise MediaError(MediaErrorKind.DEVICE_UNAVAILABLE, "No camera or microphone is available.")
        return MediaHandle(tracks)


_SOURCES: Dict[str, Callable[[], MediaSource]] = {
    "synthetic": SyntheticMediaSource,
}


def build_media_source(name: str) -> MediaSource:
    """Instantiate a configured capture backend by name."""

    key = name.strip().lower()
    try:
        factory = _SOURCES[key]
    except KeyError:
        raise ValueError(f"Unknown media source {name!r}; expected one of {sorted(_SOURCES)}") from None
    return factory()

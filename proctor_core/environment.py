"""
Host Environment - The platform surface the proctoring sensors observe

The sensors never talk to a concrete browser or OS. They see:
- event targets (document, window, media devices, network connection)
  with add/remove listener semantics,
- media streams and tracks that can be stopped,
- a video element that yields frames as numpy arrays,
- the fullscreen API, feature flags and fingerprint fields,
- two clocks (wall-clock epoch ms and a monotonic ms counter).

A host adapter subclasses HostEnvironment/MediaDevices/VideoElement and
bridges them to its platform. The defaults implemented here are plain
in-memory behaviour so adapters only override what their platform provides.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, MutableMapping, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

EventHandler = Callable[["DomEvent"], Any]


class MediaError(Exception):
    """
    Platform media failure, named after the DOMException it mirrors
    (NotAllowedError, NotFoundError, NotReadableError, ...).
    """

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or name)
        self.name = name


# ============== Events ==============

@dataclass
class DomEvent:
    """An event delivered to listeners"""
    type: str
    key: Optional[str] = None
    ctrl_key: bool = False
    shift_key: bool = False
    alt_key: bool = False
    meta_key: bool = False
    client_x: int = 0
    client_y: int = 0
    target: Optional["Element"] = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self):
        self.default_prevented = True

    def stop_propagation(self):
        self.propagation_stopped = True


class EventTarget:
    """Minimal add/remove/dispatch listener bookkeeping"""

    def __init__(self):
        self._listeners: Dict[str, List[Tuple[EventHandler, bool]]] = defaultdict(list)

    def add_event_listener(self, event_type: str, handler: EventHandler, capture: bool = False):
        entry = (handler, capture)
        if entry not in self._listeners[event_type]:
            self._listeners[event_type].append(entry)

    def remove_event_listener(self, event_type: str, handler: EventHandler, capture: bool = False):
        entries = self._listeners.get(event_type)
        if entries and (handler, capture) in entries:
            entries.remove((handler, capture))

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(entries) for entries in self._listeners.values())

    def dispatch_event(self, event: DomEvent) -> bool:
        """
        Deliver an event to capture listeners first, then bubble listeners.

        Returns:
            False if any listener called prevent_default()
        """
        entries = list(self._listeners.get(event.type, []))
        ordered = [h for h, capture in entries if capture] + [h for h, capture in entries if not capture]
        for handler in ordered:
            handler(event)
        return not event.default_prevented


# ============== DOM ==============

@dataclass(eq=False)
class Element:
    """A node in the host's document tree"""
    tag: str
    id: Optional[str] = None
    text_content: str = ""
    style: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["Element"] = field(default_factory=list)
    parent: Optional["Element"] = field(default=None, repr=False)

    def append_child(self, child: "Element") -> "Element":
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self.children.append(child)
        return child

    def remove_child(self, child: "Element"):
        if child in self.children:
            self.children.remove(child)
            child.parent = None

    def remove(self):
        if self.parent is not None:
            self.parent.remove_child(self)

    def find_by_id(self, element_id: str) -> Optional["Element"]:
        if self.id == element_id:
            return self
        for child in self.children:
            found = child.find_by_id(element_id)
            if found is not None:
                return found
        return None

    @property
    def is_editable(self) -> bool:
        return self.tag.lower() in ("input", "textarea") or "contenteditable" in self.attributes

    def focus(self):
        logger.debug(f"Focus requested on <{self.tag} id={self.id}>")


class Document(EventTarget):
    """The host document: body/head trees, visibility and fullscreen"""

    def __init__(self, fullscreen_enabled: bool = True):
        super().__init__()
        self.head = Element("head")
        self.body = Element("body")
        self.hidden = False
        self.fullscreen_enabled = fullscreen_enabled
        self.fullscreen_element: Optional[Element] = None

    def create_element(self, tag: str, element_id: Optional[str] = None) -> Element:
        return Element(tag=tag, id=element_id)

    def get_element_by_id(self, element_id: str) -> Optional[Element]:
        return self.head.find_by_id(element_id) or self.body.find_by_id(element_id)

    async def request_fullscreen(self, element: Element):
        if not self.fullscreen_enabled:
            raise MediaError("NotSupportedError", "Fullscreen API not available")
        self.fullscreen_element = element

    async def exit_fullscreen(self):
        self.fullscreen_element = None


class Window(EventTarget):
    """The host window: focus events, secure context"""

    def __init__(self, is_secure_context: bool = True):
        super().__init__()
        self.is_secure_context = is_secure_context

    def focus(self):
        logger.debug("Window focus requested")


# ============== Media ==============

@dataclass
class MediaDeviceInfo:
    kind: str  # videoinput | audioinput | audiooutput
    device_id: str = ""
    label: str = ""


class MediaStreamTrack:
    """
    One audio or video track of a stream.

    An audio track may carry a sample reader returning the latest int16 PCM
    chunk; the violation analyzer uses it for audio-level analysis.
    """

    def __init__(
        self,
        kind: str,
        label: str = "",
        sample_reader: Optional[Callable[[], Optional[np.ndarray]]] = None,
        sample_rate: int = 44100
    ):
        self.kind = kind
        self.label = label
        self.ready_state = "live"
        self.sample_rate = sample_rate
        self._sample_reader = sample_reader

    def stop(self):
        self.ready_state = "ended"

    def read_samples(self) -> Optional[np.ndarray]:
        if self.ready_state != "live" or self._sample_reader is None:
            return None
        return self._sample_reader()


class MediaStream:
    def __init__(self, tracks: Optional[List[MediaStreamTrack]] = None):
        self._tracks = list(tracks or [])

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    def get_audio_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)


class MediaDevices(EventTarget, ABC):
    """Camera/microphone access. Emits 'devicechange'."""

    supports_get_user_media: bool = True
    supports_display_media: bool = True

    @abstractmethod
    async def enumerate_devices(self) -> List[MediaDeviceInfo]:
        ...

    @abstractmethod
    async def get_user_media(self, video: Any = False, audio: Any = False) -> MediaStream:
        """
        Open a stream. Raises MediaError('NotAllowedError') on denied
        permission and MediaError('NotFoundError') when no device matches.
        """

    async def get_display_media(self, *args, **kwargs) -> MediaStream:
        raise MediaError("NotSupportedError", "Screen capture not available")


class NetworkConnection(EventTarget):
    """Network information. Emits 'change'."""

    def __init__(self, effective_type: str = "4g", downlink: float = 10.0, rtt: int = 50):
        super().__init__()
        self.effective_type = effective_type
        self.downlink = downlink
        self.rtt = rtt


@dataclass
class Navigator:
    media_devices: Optional[MediaDevices]
    user_agent: str = ""
    language: str = "en-US"
    platform: str = ""
    hardware_concurrency: int = 1
    clipboard_supported: bool = True
    connection: Optional[NetworkConnection] = None


@dataclass
class ScreenInfo:
    width: int = 1920
    height: int = 1080
    color_depth: int = 24


class VideoElement(ABC):
    """
    A playing video bound to a camera stream.

    Hosts implement frame capture; frames are HxWx3 uint8 arrays in BGR
    order (OpenCV convention).
    """

    def __init__(self, stream: MediaStream):
        self.src_object = stream
        self.autoplay = True
        self.muted = True

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True once metadata is loaded and frames can be captured"""

    @abstractmethod
    async def wait_until_ready(self):
        """Resolve when metadata is loaded; the caller bounds it with a timeout"""

    @abstractmethod
    def capture_frame(self) -> Optional[np.ndarray]:
        ...

    @property
    def video_width(self) -> int:
        return 0

    @property
    def video_height(self) -> int:
        return 0


class HostEnvironment(ABC):
    """Everything the proctoring core needs from its platform"""

    def __init__(
        self,
        document: Document,
        window: Window,
        navigator: Navigator,
        screen: Optional[ScreenInfo] = None,
        timezone: str = "UTC",
        session_storage: Optional[MutableMapping[str, str]] = None
    ):
        self.document = document
        self.window = window
        self.navigator = navigator
        self.screen = screen or ScreenInfo()
        self.timezone = timezone
        self.session_storage: MutableMapping[str, str] = session_storage if session_storage is not None else {}

    @property
    def media_devices(self) -> Optional[MediaDevices]:
        return self.navigator.media_devices

    def now_ms(self) -> int:
        """Wall-clock time in epoch milliseconds"""
        return int(time.time() * 1000)

    def monotonic_ms(self) -> float:
        """Monotonic milliseconds, for measuring intervals"""
        return time.monotonic() * 1000

    def memory_info(self) -> Optional[Tuple[int, int]]:
        """(used_heap, total_heap) in bytes, or None when unavailable"""
        return None

    @abstractmethod
    def create_video_element(self, stream: MediaStream) -> VideoElement:
        ...

"""
Activity Monitor - Tracks student interaction with the exam page

Features:
- Tab switch counting with escalation past the allowed count
- Window blur, clipboard and context-menu attempts
- Developer-tool and navigation keyboard shortcuts
- Rapid-click (automation) and long mouse-idle detection
- Screen capture attempts via the display-media API
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..config import ProctoringConfig, ProctorSettings, settings as default_settings
from ..environment import DomEvent, HostEnvironment
from ..schemas import Severity, ViolationEvent, ViolationType
from ..utils.listeners import ListenerRegistry
from ..utils.timers import IntervalTimer

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[ViolationEvent], None]

# (key, ctrl, shift, alt); a False modifier means "not required"
SUSPICIOUS_SHORTCUTS = [
    # Developer tools
    ("f12", False, False, False),
    ("i", True, True, False),
    ("j", True, True, False),
    ("c", True, True, False),
    ("u", True, False, False),

    # Browser shortcuts
    ("r", True, False, False),
    ("f5", False, False, False),
    ("t", True, False, False),
    ("n", True, False, False),
    ("w", True, False, False),

    # Alt+Tab
    ("tab", False, False, True),
]


def is_suspicious_shortcut(event: DomEvent) -> bool:
    """Match a keydown against the shortcut list (key case-insensitive)"""
    if not event.key:
        return False

    key = event.key.lower()
    return any(
        key == s_key
        and (not ctrl or event.ctrl_key)
        and (not shift or event.shift_key)
        and (not alt or event.alt_key)
        for s_key, ctrl, shift, alt in SUSPICIOUS_SHORTCUTS
    )


class ActivityMonitor:
    """
    Listens to page, window and input events and reports violations.

    All listeners go through one ListenerRegistry so ``stop()`` removes
    exactly what ``start()`` installed.
    """

    KEY_RATE_LIMIT_MS = 1000
    RAPID_CLICK_GAP_MS = 100
    RAPID_CLICK_LIMIT = 5
    MOUSE_IDLE_LIMIT_MS = 300_000

    def __init__(
        self,
        config: ProctoringConfig,
        on_violation: ViolationCallback,
        environment: HostEnvironment,
        settings: Optional[ProctorSettings] = None
    ):
        self.config = config
        self.on_violation = on_violation
        self.environment = environment
        self.settings = settings or default_settings

        self.is_running = False
        self._listeners = ListenerRegistry()
        self._idle_timer: Optional[IntervalTimer] = None

        # Tab / focus tracking
        self.tab_switch_count = 0
        self._last_tab_switch_time = 0
        self._blur_time: Optional[int] = None
        self._is_window_focused = True

        # Keyboard tracking
        self._suspicious_key_count = 0
        self._last_key_report: Optional[int] = None

        # Mouse tracking
        self._rapid_click_count = 0
        self._last_click_time = 0
        self._last_mouse_move = 0
        self._idle_reported = False

        # Screen capture interception
        self._wrapped_devices = None
        self._original_display_media = None
        self._original_was_own = False

    # ============== Lifecycle ==============

    def start(self):
        if self.is_running:
            return

        self.is_running = True
        logger.info("Starting activity monitoring")

        self._monitor_page_visibility()
        self._monitor_window_focus()
        self._monitor_clipboard()
        self._monitor_right_click()
        self._monitor_keyboard()
        self._monitor_mouse()
        self._monitor_screen_share()

    def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        self._listeners.remove_all()

        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

        self._restore_screen_share()
        logger.info("Activity monitoring stopped")

    def _emit(self, violation_type: ViolationType, severity: Severity, description: str,
              data: Optional[Dict[str, Any]] = None, now: Optional[int] = None):
        self.on_violation(ViolationEvent(
            type=violation_type,
            timestamp=now if now is not None else self.environment.now_ms(),
            severity=severity,
            description=description,
            data=data
        ))

    # ============== Page visibility ==============

    def _monitor_page_visibility(self):
        self._listeners.listen(self.environment.document, "visibilitychange", self._on_visibility_change)

    def _on_visibility_change(self, event: DomEvent):
        now = self.environment.now_ms()

        if self.environment.document.hidden:
            self._blur_time = now
            self._is_window_focused = False

            if not self.config.prevent_tab_switch:
                return

            self.tab_switch_count += 1
            self._last_tab_switch_time = now
            allowed = self.config.allowed_tab_switches
            data = {"total_switches": self.tab_switch_count, "allowed_switches": allowed}

            if self.tab_switch_count > allowed:
                self._emit(
                    ViolationType.TAB_SWITCH, Severity.HIGH,
                    f"Exceeded allowed tab switches ({self.tab_switch_count}/{allowed})",
                    data, now
                )
            else:
                self._emit(
                    ViolationType.TAB_SWITCH, Severity.MEDIUM,
                    f"Tab switch detected ({self.tab_switch_count}/{allowed})",
                    data, now
                )
        elif self._blur_time is not None:
            duration = now - self._blur_time
            self._blur_time = None
            self._is_window_focused = True
            logger.info(f"Returned to exam tab after {duration}ms")

    # ============== Window focus ==============

    def _monitor_window_focus(self):
        self._listeners.listen(self.environment.window, "blur", self._on_blur)
        self._listeners.listen(self.environment.window, "focus", self._on_focus)

    def _on_blur(self, event: DomEvent):
        now = self.environment.now_ms()
        self._blur_time = now
        self._is_window_focused = False
        self._emit(
            ViolationType.WINDOW_BLUR, Severity.MEDIUM,
            "Window lost focus - possible external application access",
            {"blur_time": now}, now
        )

    def _on_focus(self, event: DomEvent):
        if self._blur_time is None:
            return
        duration = self.environment.now_ms() - self._blur_time
        self._blur_time = None
        self._is_window_focused = True
        logger.info(f"Window regained focus after {duration}ms")

    # ============== Clipboard / context menu ==============

    def _monitor_clipboard(self):
        if not self.config.prevent_copy_paste:
            return
        for event_type in ("copy", "paste", "cut"):
            self._listeners.listen(self.environment.document, event_type, self._on_clipboard)

    def _on_clipboard(self, event: DomEvent):
        self._emit(
            ViolationType.COPY_PASTE, Severity.MEDIUM,
            f"Clipboard operation attempted: {event.type}",
            {"operation": event.type}
        )

    def _monitor_right_click(self):
        if not self.config.prevent_right_click:
            return
        self._listeners.listen(self.environment.document, "contextmenu", self._on_context_menu)

    def _on_context_menu(self, event: DomEvent):
        self._emit(
            ViolationType.RIGHT_CLICK, Severity.LOW,
            "Right-click context menu attempted",
            {"x": event.client_x, "y": event.client_y}
        )

    # ============== Keyboard ==============

    def _monitor_keyboard(self):
        self._listeners.listen(self.environment.document, "keydown", self._on_key_down, capture=True)

    def _on_key_down(self, event: DomEvent):
        if not is_suspicious_shortcut(event):
            return

        now = self.environment.now_ms()
        self._suspicious_key_count += 1

        if self._last_key_report is not None and now - self._last_key_report < self.KEY_RATE_LIMIT_MS:
            return

        self._last_key_report = now
        self._emit(
            ViolationType.SUSPICIOUS_MOVEMENT, Severity.MEDIUM,
            f"Suspicious keyboard shortcut detected: {event.key}",
            {
                "key": event.key,
                "ctrl": event.ctrl_key,
                "shift": event.shift_key,
                "alt": event.alt_key,
                "count": self._suspicious_key_count
            },
            now
        )

    # ============== Mouse ==============

    def _monitor_mouse(self):
        self._last_mouse_move = self.environment.now_ms()
        self._idle_reported = False

        self._listeners.listen(self.environment.document, "mousemove", self._on_mouse_move)
        self._listeners.listen(self.environment.document, "click", self._on_click)

        self._idle_timer = IntervalTimer(
            self.settings.MOUSE_IDLE_CHECK_INTERVAL,
            self.check_mouse_idle,
            name="mouse-idle"
        )
        self._idle_timer.start()

    def _on_mouse_move(self, event: DomEvent):
        self._last_mouse_move = self.environment.now_ms()
        self._idle_reported = False

    def _on_click(self, event: DomEvent):
        now = self.environment.now_ms()
        interval = now - self._last_click_time

        if interval < self.RAPID_CLICK_GAP_MS:
            self._rapid_click_count += 1
            if self._rapid_click_count > self.RAPID_CLICK_LIMIT:
                self._emit(
                    ViolationType.SUSPICIOUS_MOVEMENT, Severity.LOW,
                    "Rapid clicking detected - possible automation",
                    {"click_count": self._rapid_click_count, "interval": interval},
                    now
                )
                self._rapid_click_count = 0
        else:
            self._rapid_click_count = 0

        self._last_click_time = now

    def check_mouse_idle(self):
        """Report one violation per idle period longer than five minutes"""
        now = self.environment.now_ms()
        idle_time = now - self._last_mouse_move

        if idle_time > self.MOUSE_IDLE_LIMIT_MS and not self._idle_reported:
            self._idle_reported = True
            self._emit(
                ViolationType.SUSPICIOUS_MOVEMENT, Severity.MEDIUM,
                "No mouse activity detected for extended period",
                {"idle_time": idle_time},
                now
            )

    # ============== Screen capture ==============

    def _monitor_screen_share(self):
        devices = self.environment.media_devices
        if devices is None or not devices.supports_display_media:
            logger.debug("Screen capture API not available; nothing to intercept")
            return

        try:
            original = devices.get_display_media
            self._original_was_own = "get_display_media" in vars(devices)

            async def intercepted_display_media(*args, **kwargs):
                self._emit(
                    ViolationType.SCREEN_SHARE_STOPPED, Severity.HIGH,
                    "Screen sharing/recording attempt detected",
                    {"args": [repr(a) for a in args]}
                )
                return await original(*args, **kwargs)

            devices.get_display_media = intercepted_display_media
            self._wrapped_devices = devices
            self._original_display_media = original
        except Exception as e:
            logger.warning(f"Could not intercept screen capture API: {e}")
            self._emit(
                ViolationType.SUSPICIOUS_MOVEMENT, Severity.MEDIUM,
                "Screen capture monitoring unavailable",
                {"error": str(e)}
            )

    def _restore_screen_share(self):
        devices, self._wrapped_devices = self._wrapped_devices, None
        if devices is None:
            return

        if self._original_was_own:
            devices.get_display_media = self._original_display_media
        elif "get_display_media" in vars(devices):
            del devices.get_display_media
        self._original_display_media = None

    # ============== Accessors ==============

    def is_currently_focused(self) -> bool:
        return self._is_window_focused and not self.environment.document.hidden

    def last_activity_time(self) -> int:
        """Epoch ms of the most recent tab switch, blur, click or mouse move"""
        candidates: List[int] = [
            self._last_tab_switch_time,
            self._blur_time or 0,
            self._last_click_time,
            self._last_mouse_move
        ]
        return max(candidates)

    def reset_counters(self):
        self.tab_switch_count = 0
        self._last_tab_switch_time = 0
        self._blur_time = None
        self._is_window_focused = True

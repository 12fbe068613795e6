"""
Browser Lockdown - Restricts page affordances for the duration of an exam

enable() and disable() are exact inverses. Both are idempotent and disable()
is safe after a partial enable().
"""

import logging
from typing import Optional

from ..config import ProctoringConfig
from ..environment import DomEvent, Element, HostEnvironment
from ..schemas import CompatibilityReport
from ..utils.listeners import ListenerRegistry

logger = logging.getLogger(__name__)

FULLSCREEN_CONTAINER_ID = "proctoring-fullscreen-container"
NO_SELECT_STYLE_ID = "proctoring-no-select"

FULLSCREEN_CONTAINER_STYLE = {
    "position": "fixed",
    "top": "0",
    "left": "0",
    "width": "100vw",
    "height": "100vh",
    "background": "white",
    "z-index": "999999",
    "overflow": "auto",
}

NO_SELECT_CSS = """
* {
  -webkit-user-select: none !important;
  user-select: none !important;
}

input, textarea, [contenteditable] {
  -webkit-user-select: text !important;
  user-select: text !important;
}
"""

# (key, ctrl, shift, alt)
BLOCKED_SHORTCUTS = [
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

    # Navigation
    ("l", True, False, False),
    ("d", True, False, False),

    # System
    ("tab", False, False, True),
    ("escape", False, False, False),
]


def is_blocked_shortcut(event: DomEvent) -> bool:
    if not event.key:
        return False

    key = event.key.lower()
    return any(
        key == b_key
        and (not ctrl or event.ctrl_key)
        and (not shift or event.shift_key)
        and (not alt or event.alt_key)
        for b_key, ctrl, shift, alt in BLOCKED_SHORTCUTS
    )


class LockdownController:
    """
    Puts the exam page into a restricted mode.

    - moves page content into a fullscreen overlay and requests fullscreen
    - blocks clipboard, context menu, Alt+Tab and navigation shortcuts
    - disables text selection outside form fields
    """

    def __init__(self, config: ProctoringConfig, environment: HostEnvironment):
        self.config = config
        self.environment = environment

        self._enabled = False
        self._listeners = ListenerRegistry()
        self._container: Optional[Element] = None
        self._style: Optional[Element] = None

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    async def enable(self):
        if self._enabled:
            return

        logger.info("Enabling browser lockdown")
        self._enabled = True

        if self.config.browser_lockdown:
            await self._enter_fullscreen()

        document = self.environment.document

        if self.config.prevent_copy_paste:
            for event_type in ("copy", "paste", "cut"):
                self._listeners.listen(document, event_type, self._block_clipboard)

        if self.config.prevent_right_click:
            self._listeners.listen(document, "contextmenu", self._block_context_menu)

        if self.config.prevent_tab_switch:
            self._listeners.listen(document, "keydown", self._block_alt_tab)

        self._listeners.listen(document, "keydown", self._block_shortcuts, capture=True)

        self._disable_text_selection()

        self._listeners.listen(document, "visibilitychange", self._log_visibility)
        self._listeners.listen(self.environment.window, "blur", self._log_blur)
        self._listeners.listen(self.environment.window, "focus", self._log_focus)

        logger.info("Browser lockdown enabled")

    async def disable(self):
        # enable() flips the flag before touching the page, so a partial
        # enable still gets torn down here
        if not self._enabled:
            return

        logger.info("Disabling browser lockdown")

        await self._exit_fullscreen()
        self._listeners.remove_all()
        self._enable_text_selection()

        self._enabled = False
        logger.info("Browser lockdown disabled")

    # ============== Fullscreen ==============

    async def _enter_fullscreen(self):
        document = self.environment.document

        container = document.create_element("div", FULLSCREEN_CONTAINER_ID)
        container.style.update(FULLSCREEN_CONTAINER_STYLE)

        for child in list(document.body.children):
            if child.id != FULLSCREEN_CONTAINER_ID:
                container.append_child(child)

        document.body.append_child(container)
        self._container = container

        try:
            await document.request_fullscreen(container)
        except Exception as e:
            logger.warning(f"Could not enter fullscreen mode: {e}")

    async def _exit_fullscreen(self):
        document = self.environment.document

        if document.fullscreen_element is not None:
            try:
                await document.exit_fullscreen()
            except Exception as e:
                logger.warning(f"Could not exit fullscreen mode: {e}")

        container, self._container = self._container, None
        if container is None:
            return

        for child in list(container.children):
            document.body.append_child(child)
        container.remove()

    # ============== Input blocking ==============

    def _block_clipboard(self, event: DomEvent):
        event.prevent_default()
        logger.debug(f"Blocked clipboard operation: {event.type}")

    def _block_context_menu(self, event: DomEvent):
        event.prevent_default()
        logger.debug("Blocked right-click")

    def _block_alt_tab(self, event: DomEvent):
        if event.alt_key and (event.key or "").lower() == "tab":
            event.prevent_default()
            logger.debug("Blocked Alt+Tab")

    def _block_shortcuts(self, event: DomEvent):
        if is_blocked_shortcut(event):
            event.prevent_default()
            event.stop_propagation()
            logger.debug(f"Blocked shortcut: {event.key}")

    def _block_select_start(self, event: DomEvent):
        if event.target is not None and event.target.is_editable:
            return
        event.prevent_default()

    # ============== Text selection ==============

    def _disable_text_selection(self):
        document = self.environment.document

        if document.get_element_by_id(NO_SELECT_STYLE_ID) is None:
            style = document.create_element("style", NO_SELECT_STYLE_ID)
            style.text_content = NO_SELECT_CSS
            document.head.append_child(style)
            self._style = style

        self._listeners.listen(document, "selectstart", self._block_select_start)

    def _enable_text_selection(self):
        style, self._style = self._style, None
        if style is not None:
            style.remove()

    # ============== Logging-only listeners ==============

    def _log_visibility(self, event: DomEvent):
        if self.environment.document.hidden:
            logger.info("Page visibility lost - potential tab switch")

    def _log_blur(self, event: DomEvent):
        logger.info("Window lost focus")

    def _log_focus(self, event: DomEvent):
        logger.info("Window gained focus")

    # ============== Helpers ==============

    def check_compatibility(self) -> CompatibilityReport:
        """Report browser features missing for full proctoring support"""
        issues = []

        if not self.environment.document.fullscreen_enabled:
            issues.append("Fullscreen mode not supported")

        devices = self.environment.media_devices
        if devices is None or not devices.supports_get_user_media:
            issues.append("Camera access not supported")

        if not self.environment.navigator.clipboard_supported:
            issues.append("Advanced clipboard protection not available")

        if not self.environment.window.is_secure_context:
            issues.append("Secure context (HTTPS) required for full functionality")

        return CompatibilityReport(compatible=not issues, issues=issues)

    def force_focus(self):
        """Pull focus back to the exam"""
        if self._container is not None:
            self._container.focus()
        else:
            self.environment.window.focus()

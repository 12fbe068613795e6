"""
Tests for LockdownController
"""
import pytest

from proctor_core.config import ProctoringConfig
from proctor_core.detectors import LockdownController
from proctor_core.detectors.lockdown import FULLSCREEN_CONTAINER_ID, NO_SELECT_STYLE_ID
from proctor_core.environment import Document, DomEvent, Element

from conftest import FakeEnvironment, FakeMediaDevices


@pytest.fixture
def page(env):
    """Environment whose body holds some exam content"""
    env.document.body.append_child(Element("main", id="exam"))
    env.document.body.append_child(Element("footer", id="footer"))
    return env


def snapshot(env):
    return (
        [c.id for c in env.document.body.children],
        [c.id for c in env.document.head.children],
        env.document.listener_count(),
        env.window.listener_count(),
        env.document.fullscreen_element
    )


class TestEnableDisable:
    """Tests for enable/disable"""

    @pytest.mark.asyncio
    async def test_enable_moves_content_into_overlay(self, page):
        lockdown = LockdownController(ProctoringConfig(), page)

        await lockdown.enable()

        body = page.document.body
        assert [c.id for c in body.children] == [FULLSCREEN_CONTAINER_ID]
        container = body.children[0]
        assert [c.id for c in container.children] == ["exam", "footer"]
        assert page.document.fullscreen_element is container
        assert page.document.get_element_by_id(NO_SELECT_STYLE_ID) is not None
        assert lockdown.is_enabled is True

    @pytest.mark.asyncio
    async def test_enable_twice_is_idempotent(self, page):
        lockdown = LockdownController(ProctoringConfig(), page)

        await lockdown.enable()
        first = snapshot(page)
        await lockdown.enable()

        assert snapshot(page) == first

    @pytest.mark.asyncio
    async def test_disable_restores_page(self, page):
        before = snapshot(page)
        lockdown = LockdownController(ProctoringConfig(), page)

        await lockdown.enable()
        await lockdown.disable()

        assert snapshot(page) == before
        assert lockdown.is_enabled is False

    @pytest.mark.asyncio
    async def test_enable_disable_enable_disable(self, page):
        """enable; enable; disable; disable leaves no residue"""
        before = snapshot(page)
        lockdown = LockdownController(ProctoringConfig(), page)

        await lockdown.enable()
        await lockdown.enable()
        await lockdown.disable()
        await lockdown.disable()

        assert snapshot(page) == before

    @pytest.mark.asyncio
    async def test_disable_before_enable(self, page):
        before = snapshot(page)

        await LockdownController(ProctoringConfig(), page).disable()

        assert snapshot(page) == before

    @pytest.mark.asyncio
    async def test_fullscreen_unsupported_still_locks(self):
        env = FakeEnvironment()
        env.document = Document(fullscreen_enabled=False)
        lockdown = LockdownController(ProctoringConfig(), env)

        await lockdown.enable()

        assert lockdown.is_enabled is True
        assert env.document.fullscreen_element is None
        assert env.document.get_element_by_id(FULLSCREEN_CONTAINER_ID) is not None

        await lockdown.disable()
        assert env.document.get_element_by_id(FULLSCREEN_CONTAINER_ID) is None


class TestBlocking:
    """Tests for blocked interactions"""

    @pytest.mark.asyncio
    async def test_clipboard_blocked(self, page):
        lockdown = LockdownController(ProctoringConfig(), page)
        await lockdown.enable()

        allowed = page.document.dispatch_event(DomEvent("paste"))

        assert allowed is False

    @pytest.mark.asyncio
    async def test_clipboard_allowed_when_not_prevented(self, page):
        lockdown = LockdownController(ProctoringConfig(prevent_copy_paste=False), page)
        await lockdown.enable()

        assert page.document.dispatch_event(DomEvent("copy")) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", [
        DomEvent("keydown", key="F12"),
        DomEvent("keydown", key="l", ctrl_key=True),
        DomEvent("keydown", key="d", ctrl_key=True),
        DomEvent("keydown", key="Escape"),
        DomEvent("keydown", key="Tab", alt_key=True),
    ])
    async def test_shortcuts_blocked(self, page, event):
        lockdown = LockdownController(ProctoringConfig(), page)
        await lockdown.enable()

        assert page.document.dispatch_event(event) is False
        assert event.propagation_stopped is True

    @pytest.mark.asyncio
    async def test_plain_typing_allowed(self, page):
        lockdown = LockdownController(ProctoringConfig(), page)
        await lockdown.enable()

        assert page.document.dispatch_event(DomEvent("keydown", key="a")) is True

    @pytest.mark.asyncio
    async def test_selection_allowed_in_inputs(self, page):
        lockdown = LockdownController(ProctoringConfig(), page)
        await lockdown.enable()

        in_text = page.document.dispatch_event(DomEvent("selectstart", target=Element("textarea")))
        in_page = page.document.dispatch_event(DomEvent("selectstart", target=Element("p")))

        assert in_text is True
        assert in_page is False


class TestCompatibility:
    """Tests for check_compatibility"""

    def test_fully_compatible(self, env):
        report = LockdownController(ProctoringConfig(), env).check_compatibility()

        assert report.compatible is True
        assert report.issues == []

    def test_reports_missing_features(self):
        devices = FakeMediaDevices()
        devices.supports_get_user_media = False
        env = FakeEnvironment(media_devices=devices, clipboard_supported=False)
        env.window.is_secure_context = False
        env.document.fullscreen_enabled = False

        report = LockdownController(ProctoringConfig(), env).check_compatibility()

        assert report.compatible is False
        assert report.issues == [
            "Fullscreen mode not supported",
            "Camera access not supported",
            "Advanced clipboard protection not available",
            "Secure context (HTTPS) required for full functionality"
        ]

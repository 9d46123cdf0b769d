import builtins
import threading
import pytest

from realtime_reporter import settings as settings_mod
from realtime_reporter.core import PreconditionError
from realtime_reporter.settings import (
    ReporterSettings,
    current_settings,
    set_global_settings,
    use_settings,
    with_overrides,
)


@pytest.fixture
def restore_global_settings():
    saved = settings_mod._default_settings
    token = settings_mod._settings_var.set(saved)
    yield
    settings_mod._settings_var.reset(token)
    settings_mod._default_settings = saved


def test_defaults_are_expected():
    s = ReporterSettings()
    assert s.driver_candidates[0] == "Appium"
    assert s.context_retry_drivers == ("Puppeteer", "Playwright")
    assert s.context_retry_attempts == 5
    assert s.first_step_id == 1
    assert s.exit_code_on_failure == 1

    assert PreconditionError in s.fatal_exceptions
    assert builtins.KeyboardInterrupt in s.fatal_exceptions
    assert builtins.SystemExit in s.fatal_exceptions


def test_is_immutable_frozen_dataclass():
    s = ReporterSettings()
    with pytest.raises((AttributeError, TypeError)):
        setattr(s, "first_step_id", 0)


def test_classifiers():
    s = ReporterSettings()
    assert s.is_fatal(PreconditionError("missing step"))
    assert not s.is_fatal(RuntimeError("boom"))
    assert s.is_stale_context(RuntimeError("Execution context was destroyed"))
    assert not s.is_stale_context(RuntimeError("element not found"))
    assert s.is_screenshot_step("click")
    assert not s.is_screenshot_step("see")
    assert not s.is_screenshot_step(None)
    assert s.is_retval_step("grabTextFrom")
    assert s.is_retval_step("executeScript")
    assert not s.is_retval_step("click")
    assert not s.is_retval_step(None)


def test_empty_fatal_exceptions_never_halt():
    s = ReporterSettings(fatal_exceptions=())
    assert not s.is_fatal(PreconditionError("x"))


def test_use_settings_is_stackable_and_restores():
    base = current_settings()
    with use_settings(context_retry_attempts=3) as outer:
        assert current_settings() is outer
        assert outer.context_retry_attempts == 3
        with use_settings(first_step_id=0) as inner:
            assert inner.first_step_id == 0
            assert inner.context_retry_attempts == 3
        assert current_settings().first_step_id == base.first_step_id
    assert current_settings() == base


def test_use_settings_without_overrides_returns_current():
    with use_settings() as eff:
        assert eff is current_settings()


def test_use_settings_does_not_suppress_exceptions():
    with pytest.raises(ValueError):
        with use_settings(first_step_id=0):
            raise ValueError("propagates")


def test_with_overrides_leaves_base_untouched():
    base = ReporterSettings()
    derived = with_overrides(base, screenshot_steps=("see",))
    assert derived.is_screenshot_step("see")
    assert not base.is_screenshot_step("see")


def test_global_update_affects_current_and_future_contexts(restore_global_settings):
    new = set_global_settings(exit_code_on_failure=2)
    assert new.exit_code_on_failure == 2
    assert current_settings().exit_code_on_failure == 2

    seen = {}

    def worker():
        seen["val"] = current_settings().exit_code_on_failure

    t = threading.Thread(target=worker)
    t.start()
    t.join()
    assert seen["val"] == 2

"""
Reporter settings and context management for realtime-reporter.

This module defines an immutable :class:`ReporterSettings` dataclass and a
small context-management layer that lets you configure how the reporter
behaves (which automation drivers are recognised, when transient driver
errors are retried, which steps get a full screenshot, ...). Settings are
stored in a :class:`contextvars.ContextVar`, so overrides are **per logical
context** (safe for async tasks and threads).

The precedence model (highest → lowest) is:

1. Explicit ``settings=`` passed to a component constructor
2. Overrides applied through :class:`use_settings`
3. Process-wide overrides from :func:`set_global_settings`
4. Global defaults (module default)

Examples
--------
Run a reporter with a tighter retry bound::

    from realtime_reporter.settings import use_settings

    with use_settings(context_retry_attempts=3):
        reporter = RealtimeReporter(transport=transport)

Creating a derived settings object (without changing context)::

    from realtime_reporter.settings import current_settings, with_overrides
    eff = with_overrides(current_settings(), first_step_id=0)
"""
from __future__ import annotations
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from typing import Optional, Tuple, Type

from .core import PreconditionError


__all__ = [
    "ReporterSettings",
    "current_settings",
    "use_settings",
    "with_overrides",
    "set_global_settings",
]


@dataclass(frozen=True)
class ReporterSettings:
    """
    Immutable settings controlling reporter behavior.

    Parameters
    ----------
    driver_candidates : tuple of str
        Ordered names of UI automation drivers. The first name present in the
        host's driver mapping is used for snapshot capture.
    context_retry_drivers : tuple of str
        Drivers that lose their execution context on navigation. When one of
        them is active, a retry rule for stale-context errors is installed on
        the task queue at every test-begin.
    context_error_marker : str, default "context"
        Substring of an error message identifying a stale execution context.
    context_retry_attempts : int, default 5
        Total attempts allowed for a task failing with a stale-context error.
    screenshot_steps : tuple of str
        Step names that get a full visual capture instead of a lightweight
        state snapshot.
    retval_step_prefixes : tuple of str
        Step name prefixes identifying steps whose return value is reported
        once it resolves.
    first_step_id : int, default 1
        Id given to the first step (or comment) of every test.
    exit_code_on_failure : int, default 1
        Code carried by the ``exit`` message on fatal failures.
    fatal_exceptions : tuple of Exception types
        Exceptions that halt the task queue instead of being recorded as a
        task outcome.

    Notes
    -----
    - Prefer layering settings with :class:`use_settings` or
      :func:`with_overrides` rather than mutating state.
    """

    # Capability resolution
    driver_candidates: Tuple[str, ...] = (
        "Appium", "WebDriver", "WebDriverIO", "Puppeteer", "TestCafe", "Playwright",
    )
    context_retry_drivers: Tuple[str, ...] = ("Puppeteer", "Playwright")

    # Retry policy
    context_error_marker: str = "context"
    context_retry_attempts: int = 5

    # Step classification
    screenshot_steps: Tuple[str, ...] = (
        "amOnPage", "click", "doubleClick", "rightClick", "fillField",
        "appendField", "selectOption", "checkOption", "pressKey", "switchTo",
        "refreshPage", "scrollTo", "dragAndDrop", "attachFile",
    )
    retval_step_prefixes: Tuple[str, ...] = ("grab", "execute")

    # Protocol
    first_step_id: int = 1
    exit_code_on_failure: int = 1

    # Routing policy
    fatal_exceptions: Tuple[Type[BaseException], ...] = (
        PreconditionError, KeyboardInterrupt, SystemExit,
    )

    def is_fatal(self, e: BaseException) -> bool:
        """True if e must halt the task queue."""
        fx = self.fatal_exceptions
        return bool(fx) and isinstance(e, fx)

    def is_stale_context(self, e: BaseException) -> bool:
        """True if the error message carries :attr:`context_error_marker`."""
        return self.context_error_marker in str(e)

    def is_screenshot_step(self, name: Optional[str]) -> bool:
        return bool(name) and name in self.screenshot_steps

    def is_retval_step(self, name: Optional[str]) -> bool:
        return bool(name) and name.startswith(self.retval_step_prefixes)


#: Module-level default settings used when no overrides are active.
_default_settings = ReporterSettings()


#: Context-local settings for the current logical flow (async/thread safe).
_settings_var: ContextVar[ReporterSettings] = ContextVar("reporter_settings")


def current_settings() -> ReporterSettings:
    """
    Return the effective :class:`ReporterSettings` for the current context.

    Returns
    -------
    ReporterSettings
        The settings object currently active for this context. If no
        overrides were applied, the module default is returned.
    """
    return _settings_var.get(_default_settings)


class use_settings:
    """
    Context manager to apply temporary settings overrides.

    Keyword arguments correspond to fields on :class:`ReporterSettings` and
    replace the current context's settings immutably for the duration of
    the ``with`` block.

    Notes
    -----
    - Overrides are **stackable**; inner contexts take precedence.
    - On exit, the previous settings are restored.
    - This context manager never suppresses exceptions raised inside it.

    Examples
    --------
    ::

        with use_settings(first_step_id=0) as eff:
            assert eff.first_step_id == 0
    """

    def __init__(self, **overrides):
        self._overrides = overrides
        self._token: Optional[Token] = None

    def __enter__(self) -> ReporterSettings:
        base = current_settings()
        if not self._overrides:
            self._token = None
            return base
        eff = replace(base, **self._overrides)
        self._token = _settings_var.set(eff)
        return eff

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._token is not None:
            _settings_var.reset(self._token)
        # Never suppress exceptions
        return False


def with_overrides(base: ReporterSettings, **overrides) -> ReporterSettings:
    """
    Return a new :class:`ReporterSettings` with selected fields replaced.

    Parameters
    ----------
    base : ReporterSettings
        The base settings object to copy.
    **overrides
        Field-value pairs to override on the returned object.

    Returns
    -------
    ReporterSettings
    """
    return replace(base, **overrides)


def set_global_settings(**overrides) -> ReporterSettings:
    """
    Permanently replace the process-wide default settings.

    Notes
    -----
    - Intended for top-level scripts and one-off runs.
    - This affects the entire interpreter process.
    """
    global _default_settings
    new = replace(_default_settings, **overrides)
    _default_settings = new
    _settings_var.set(new)
    return new

"""Fail the run when any test is skipped, deselected or marked xfail."""

from __future__ import annotations

from collections import Counter

_UNRUN: Counter = Counter()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _UNRUN["deselected"] += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in ("setup", "call"):
        return
    if getattr(report, "wasxfail", False):
        _UNRUN["xfailed" if report.skipped else "xpassed"] += 1
    elif report.skipped:
        _UNRUN["skipped"] += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    offenders = {name: count for name, count in _UNRUN.items() if count}
    if not offenders:
        return

    summary = ", ".join(f"{name}={count}" for name, count in sorted(offenders.items()))
    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep("=", f"every collected test must run ({summary})")
    session.exitstatus = 1

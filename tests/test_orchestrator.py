from __future__ import annotations

import base64
import os
from dataclasses import replace

import pytest

from acquisition.cancellation import CancelToken
from acquisition.errors import AcquisitionCancelled, DriverFault, SessionExhausted
from acquisition.locators import DEFAULT_LOCATORS
from acquisition.models import AcquisitionSession, AttemptOutcome, SessionOutcome
from acquisition.orchestrator import PAGE_PREP_ID, WINDOW_SWEEP_ID, Orchestrator, WindowTracker
from acquisition.triggers import default_triggers
from files import SessionContext

from conftest import FakeDriver, FakeElement, StubStrategy, notice_pdf, web_page_pdf

NOTICE_NAME = "NOTICE_1753375123337.pdf"
POPUP_URL = "https://sa.www4.irs.gov/notices/CP575_1753375123337.pdf"


def run(driver, config, strategies, triggers=(), **kwargs):
    orch = Orchestrator(triggers=list(triggers), strategies=strategies, config=config)
    ctx = SessionContext.from_driver(driver)
    return orch.acquire(driver, ctx, target_name="Acme Holdings LLC", **kwargs)


def outcomes(attempts):
    return [(a.strategy_id, a.outcome) for a in attempts]


def test_first_valid_candidate_ends_the_session(driver, fast_config) -> None:
    rejected = StubStrategy("first", [web_page_pdf()])
    accepted = StubStrategy("second", [notice_pdf(), notice_pdf(18_000)], filename=NOTICE_NAME)
    never = StubStrategy("third", [notice_pdf()])

    result = run(driver, fast_config, [rejected, accepted, never], correlation_key="12-3456789")

    assert result.ok
    assert result.accepted.source_strategy_id == "second"
    assert result.validation.is_valid
    assert accepted.yielded == 1
    assert never.calls == 0
    assert outcomes(result.attempts) == [
        (PAGE_PREP_ID, AttemptOutcome.SUCCESS),
        ("first", AttemptOutcome.REJECTED),
        ("second", AttemptOutcome.SUCCESS),
    ]
    assert "captured web page" in result.attempts[1].error_detail


def test_exhaustion_reports_every_attempt(driver, fast_config) -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    strategies = [StubStrategy("empty"), StubStrategy("webpage", [web_page_pdf()])]

    result = run(driver, fast_config, strategies, session=session)

    assert not result.ok
    assert isinstance(result.error, SessionExhausted)
    assert session.outcome is SessionOutcome.EXHAUSTED
    assert outcomes(result.attempts)[1:] == [
        ("empty", AttemptOutcome.FAILURE),
        ("webpage", AttemptOutcome.REJECTED),
    ]
    assert result.attempts[1].error_detail == "no candidates produced"


def test_strategy_error_is_recorded_and_next_strategy_runs(driver, fast_config) -> None:
    broken = StubStrategy("broken", error=RuntimeError("kaput"))
    good = StubStrategy("good", [notice_pdf()])

    result = run(driver, fast_config, [broken, good])

    assert result.ok
    failure = next(a for a in result.attempts if a.strategy_id == "broken")
    assert failure.outcome is AttemptOutcome.FAILURE
    assert failure.error_detail == "RuntimeError: kaput"


def test_driver_fault_aborts_immediately(driver, fast_config) -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    dead = StubStrategy("dead", error=DriverFault("Browser session lost during print_to_pdf"))
    good = StubStrategy("good", [notice_pdf()])

    result = run(driver, fast_config, [dead, good], session=session)

    assert not result.ok
    assert isinstance(result.error, DriverFault)
    assert good.calls == 0
    assert session.outcome is SessionOutcome.ABORTED
    assert not os.path.exists(driver.download_dir)


def test_cancellation_is_raised_after_cleanup(driver, fast_config) -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    token = CancelToken()

    def cancel_and_open_window(ctx):
        driver.open_window("popup", POPUP_URL)
        ctx.cancel.cancel("operator stop")

    cancelling = StubStrategy("cancelling", [notice_pdf()], hook=cancel_and_open_window)
    after = StubStrategy("after", [notice_pdf()])

    with pytest.raises(AcquisitionCancelled):
        run(driver, fast_config, [cancelling, after], cancel=token, session=session)

    assert session.outcome is SessionOutcome.CANCELLED
    assert after.calls == 0
    assert driver.closed == ["popup"]
    assert driver.current == "main"
    assert not os.path.exists(driver.download_dir)


def test_cancelled_before_start_runs_nothing(driver, fast_config) -> None:
    token = CancelToken()
    token.cancel()
    strategy = StubStrategy("any", [notice_pdf()])

    with pytest.raises(AcquisitionCancelled):
        run(driver, fast_config, [strategy], cancel=token)
    assert strategy.calls == 0
    assert os.listdir(fast_config.temp_root) == []


def test_new_windows_become_discovered_urls(driver, fast_config) -> None:
    seen = []
    opener = StubStrategy("opener", hook=lambda ctx: driver.open_window("popup", POPUP_URL))
    blank = StubStrategy("blank", hook=lambda ctx: driver.open_window("blank", "about:blank"))
    reader = StubStrategy("reader", hook=lambda ctx: seen.extend(ctx.discovered_urls))

    run(driver, fast_config, [opener, blank, reader])

    assert seen == [POPUP_URL]
    assert driver.closed == ["popup", "blank"]
    assert driver.current == "main"


def test_triggers_fire_and_failures_are_logged(driver, fast_config) -> None:
    link = FakeElement("notice")
    driver.elements[DEFAULT_LOCATORS["notice_link"][0].value] = [link]
    driver.on_click = lambda el: driver.open_window("letter", POPUP_URL)
    seen = []
    reader = StubStrategy("reader", [notice_pdf()], hook=lambda ctx: seen.extend(ctx.discovered_urls))

    result = run(driver, fast_config, [reader], triggers=default_triggers())

    assert result.ok
    assert seen == [POPUP_URL]
    log = dict(outcomes(result.attempts))
    assert log["trigger_click_notice_link"] is AttemptOutcome.SUCCESS
    assert log["trigger_save_shortcut"] is AttemptOutcome.SUCCESS
    assert log["trigger_click_download_button"] is AttemptOutcome.FAILURE
    assert log["trigger_script_export"] is AttemptOutcome.FAILURE
    assert driver.context_clicked == [link]


def test_page_preparation_failure_is_not_fatal(driver, fast_config) -> None:
    driver.prep_error = RuntimeError("script blocked by CSP")

    result = run(driver, fast_config, [StubStrategy("good", [notice_pdf()])])

    assert result.ok
    prep = result.attempts[0]
    assert (prep.strategy_id, prep.outcome) == (PAGE_PREP_ID, AttemptOutcome.FAILURE)
    assert "CSP" in prep.error_detail


def test_prepared_page_without_target_notes_detail(driver, fast_config) -> None:
    driver.isolate_result = False
    result = run(driver, fast_config, [StubStrategy("good", [notice_pdf()])])
    assert result.attempts[0].outcome is AttemptOutcome.SUCCESS
    assert "target content not found" in result.attempts[0].error_detail


def test_threshold_comes_from_config(driver, fast_config) -> None:
    strict = replace(fast_config, accept_threshold=1_000)
    result = run(driver, strict, [StubStrategy("good", [notice_pdf()])])

    assert not result.ok
    assert result.attempts[-1].outcome is AttemptOutcome.REJECTED


def test_temp_dir_is_per_session_and_removed(driver, fast_config) -> None:
    session = AcquisitionSession("Acme Holdings LLC", session_id="sess42")
    result = run(driver, fast_config, [StubStrategy("good", [notice_pdf()])], session=session)

    assert result.ok
    assert os.path.basename(driver.download_dir).startswith("capture_sess42_")
    assert os.path.dirname(driver.download_dir) == fast_config.temp_root
    assert os.listdir(fast_config.temp_root) == []


def test_default_pipeline_end_to_end(driver, fast_config) -> None:
    # The printed page is chrome, the embedded object is the notice
    driver.pdf = web_page_pdf()
    encoded = base64.b64encode(notice_pdf()).decode("ascii")
    driver.page_source = f'<main><embed type="application/pdf" src="data:application/pdf;base64,{encoded}"></main>'

    orch = Orchestrator(config=fast_config)
    result = orch.acquire(driver, SessionContext.from_driver(driver), target_name="Acme Holdings LLC",
                          correlation_key="12-3456789")

    assert result.ok
    assert result.accepted.source_strategy_id == "embedded_content"
    rejected = [a.strategy_id for a in result.attempts if a.outcome is AttemptOutcome.REJECTED]
    assert rejected == ["programmatic_export_full_page", "programmatic_export_content_area"]
    assert len(driver.print_calls) == 2


def test_window_sweep_error_is_recorded_not_raised(fast_config) -> None:
    class AlertingDriver(FakeDriver):
        reads = 0

        @property
        def window_handles(self):
            self.reads += 1
            if self.reads > 1:
                raise RuntimeError("unexpected alert open")
            return list(self.handles)

    driver = AlertingDriver()
    session = AcquisitionSession("Acme Holdings LLC")
    result = run(driver, fast_config, [StubStrategy("empty"), StubStrategy("good", [notice_pdf()])], session=session)

    assert result.ok
    assert session.outcome is SessionOutcome.ACCEPTED
    sweeps = [a for a in result.attempts if a.strategy_id == WINDOW_SWEEP_ID]
    assert sweeps and all(a.outcome is AttemptOutcome.FAILURE for a in sweeps)
    assert sweeps[0].error_detail == "RuntimeError: unexpected alert open"
    assert not os.path.exists(driver.download_dir)


def test_unexpected_error_aborts_with_structured_failure(fast_config) -> None:
    class NoFocusDriver(FakeDriver):
        @property
        def current_window_handle(self):
            raise RuntimeError("unexpected alert open")

    driver = NoFocusDriver()
    session = AcquisitionSession("Acme Holdings LLC")
    good = StubStrategy("good", [notice_pdf()])

    result = run(driver, fast_config, [good], session=session)

    assert not result.ok
    assert result.error.kind == "CaptureError"
    assert "RuntimeError: unexpected alert open" in result.error.message
    assert session.outcome is SessionOutcome.ABORTED
    assert good.calls == 0
    assert os.listdir(fast_config.temp_root) == []


def test_window_tracker_restores_focus_when_original_is_gone(driver) -> None:
    tracker = WindowTracker(driver)
    driver.open_window("popup", POPUP_URL)
    driver.handles.remove("main")
    driver.open_window("other", "https://example.test/")

    urls = tracker.sweep()

    assert urls == [POPUP_URL, "https://example.test/"]
    assert driver.handles == []

import time

from fakes import FakeClock, FakeElement, FakePage, GridApp, grid_pages, make_row
from uisync.actions import ActionExecutor
from uisync.config import SyncConfig
from uisync.fingerprint import GridFingerprint, GridSelectors
from uisync.pagination import Direction, PagerControls, PaginationNavigator
from uisync.waiter import ReadinessWaiter


def _navigator(page: FakePage, config: SyncConfig, **kwargs) -> PaginationNavigator:
    waiter = ReadinessWaiter(page, config, clock=page.clock, sleep=page.clock.sleep)
    executor = ActionExecutor(page, waiter, config, sleep=page.clock.sleep)
    return PaginationNavigator(page, executor, GridFingerprint(page), clock=page.clock, **kwargs)


def test_advance_without_next_control_returns_false_quickly() -> None:
    page = FakePage(FakeClock())
    navigator = _navigator(page, SyncConfig())

    started = time.monotonic()
    result = navigator.advance(Direction.FORWARD)

    assert result is False
    assert time.monotonic() - started < 1.0
    assert page.clock.sleeps == []


def test_disabled_next_on_last_page_is_not_clicked(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(2, 5), start=1)

    assert _navigator(page, config).advance("forward") is False
    assert app.forward_clicks == 0


def test_forward_then_backward_round_trips(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(3, 10))
    navigator = _navigator(page, config)
    original = navigator.fingerprint.capture()

    assert navigator.advance(Direction.FORWARD) is True
    assert app.index == 1
    assert navigator.fingerprint.capture() != original
    assert navigator.advance(Direction.BACKWARD) is True
    assert navigator.fingerprint.capture() == original


def test_click_without_visible_change_reports_false(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(3, 10), next_noop=True)
    navigator = _navigator(page, config)

    assert navigator.advance(Direction.FORWARD, timeout_ms=1_000) is False
    assert app.forward_clicks == 1


def test_rows_ready_wait_after_change(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(2, 3))
    navigator = _navigator(page, config, wait_rows_ready=True)

    assert navigator.advance(Direction.FORWARD) is True
    assert app.index == 1
    assert navigator.last_hop_ms >= 0


def test_current_page_number_and_row_count(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(4, 7), start=2)
    navigator = _navigator(page, config)

    assert navigator.current_page_number() == 3
    assert navigator.visible_row_count() == 7
    assert navigator.has_control("forward") is True

    app.indicator = False
    assert navigator.current_page_number() is None


def test_current_page_number_ignores_non_numeric_indicator(page: FakePage, config: SyncConfig) -> None:
    page.register("[aria-current='page']", [FakeElement("…")])
    page.register("xpath=//button[contains(@class,'active') or @data-selected='true'][normalize-space()]", [FakeElement("4")])

    assert _navigator(page, config).current_page_number() == 4


def test_go_to_first_page_steps_backward(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(5, 3), start=3)

    assert _navigator(page, config).go_to_first_page() is True
    assert app.index == 0
    assert app.backward_clicks == 3


def test_go_to_first_page_short_circuits_on_page_one(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(5, 3))

    assert _navigator(page, config).go_to_first_page() is True
    assert app.backward_clicks == 0


def test_go_to_first_page_prefers_dedicated_control(page: FakePage, config: SyncConfig) -> None:
    app = GridApp(page, grid_pages(5, 3), start=4)

    def jump() -> None:
        app.index = 0

    page.register(PagerControls().first[0], lambda: [FakeElement("«", on_click=jump)])

    assert _navigator(page, config).go_to_first_page() is True
    assert app.index == 0
    assert app.backward_clicks == 0


def test_go_to_first_page_reports_stall(page: FakePage, config: SyncConfig) -> None:
    selectors = GridSelectors()
    page.register(selectors.rows, [make_row("Stuck row")])
    page.register(selectors.row_titles, [FakeElement("Stuck row")])
    clicks = {"n": 0}

    def ignored() -> None:
        clicks["n"] += 1

    page.register(GridApp.PREV, lambda: [FakeElement("‹", on_click=ignored)])

    assert _navigator(page, config).go_to_first_page(timeout_ms=1_000) is False
    assert clicks["n"] == 1


def test_go_to_first_page_stops_at_hop_cap(page: FakePage) -> None:
    config = SyncConfig(explicit_wait_ms=1_000, nav_hop_timeout_ms=1_000, max_first_page_hops=5)
    selectors = GridSelectors()
    state = {"offset": 0}

    def step_back() -> None:
        state["offset"] -= 1

    page.register(selectors.rows, lambda: [make_row(f"Row {state['offset']}")])
    page.register(selectors.row_titles, lambda: [FakeElement(f"Row {state['offset']}")])
    page.register(GridApp.PREV, lambda: [FakeElement("‹", on_click=step_back)])

    assert _navigator(page, config).go_to_first_page() is False
    assert state["offset"] == -5

"""In-memory stand-ins for the slice of the Playwright sync API the package uses."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from uisync.fingerprint import GridSelectors

STALE_MESSAGE = "Element is not attached to the DOM"
NAME_INNER = "xpath=.//*[self::p or self::span or self::a]"


class FakeClock:
    """Monotonic clock in seconds whose ``sleep`` only advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeElement:
    def __init__(
        self,
        text: str = "",
        *,
        visible: bool = True,
        enabled: bool = True,
        attrs: Optional[Dict[str, str]] = None,
        children: Optional[Dict[str, List["FakeElement"]]] = None,
        on_click: Optional[Callable[[], None]] = None,
        click_error: Optional[BaseException] = None,
        forced_error: Optional[BaseException] = None,
        box: Optional[Dict[str, float]] = None,
        unobstructed: bool = True,
        connected: bool = True,
        stale_evaluations: int = 0,
        wait_error: Optional[BaseException] = None,
    ) -> None:
        self.text = text
        self.visible = visible
        self.enabled = enabled
        self.attrs = attrs or {}
        self.children = children or {}
        self.on_click = on_click
        self.click_error = click_error
        self.forced_error = forced_error
        self.box = box if box is not None else {"x": 10.0, "y": 20.0, "width": 40.0, "height": 20.0}
        self.unobstructed = unobstructed
        self.connected = connected
        self.stale_evaluations = stale_evaluations
        self.wait_error = wait_error
        self.value = ""
        self.clicks = 0
        self.forced_clicks = 0

    def activate(self) -> None:
        if self.on_click is not None:
            self.on_click()


class FakeLocator:
    """Lazy locator: every call re-evaluates the element source."""

    def __init__(self, page: "FakePage", source: Callable[[], List[FakeElement]]) -> None:
        self.page = page
        self._source = source

    def _elements(self) -> List[FakeElement]:
        return list(self._source())

    def _one(self) -> FakeElement:
        elements = self._elements()
        if not elements:
            raise PlaywrightTimeoutError("Timeout 2000ms exceeded waiting for locator")
        element = elements[0]
        if not element.connected:
            raise PlaywrightError(STALE_MESSAGE)
        return element

    # -- querying ------------------------------------------------------------

    def count(self) -> int:
        return len(self._elements())

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, lambda: self._elements()[index : index + 1])

    @property
    def first(self) -> "FakeLocator":
        return self.nth(0)

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(
            self.page,
            lambda: [child for el in self._elements() for child in el.children.get(selector, [])],
        )

    # -- state ---------------------------------------------------------------

    def is_visible(self) -> bool:
        elements = self._elements()
        return bool(elements) and elements[0].visible

    def is_enabled(self) -> bool:
        return self._one().enabled

    def get_attribute(self, name: str) -> Optional[str]:
        return self._one().attrs.get(name)

    def inner_text(self, timeout: Optional[int] = None) -> str:
        return self._one().text

    def all_inner_texts(self) -> List[str]:
        return [el.text for el in self._elements()]

    def all_text_contents(self) -> List[str]:
        return [el.text for el in self._elements()]

    def bounding_box(self) -> Optional[Dict[str, float]]:
        return self._one().box

    def element_handle(self, timeout: Optional[int] = None) -> "FakeElementHandle":
        return FakeElementHandle(self._one())

    def wait_for(self, *, state: str = "visible", timeout: Optional[int] = None) -> None:
        elements = self._elements()
        if elements and elements[0].wait_error is not None:
            raise elements[0].wait_error
        if state == "visible" and elements and elements[0].visible:
            return
        if state == "attached" and elements:
            return
        if state == "hidden" and (not elements or not elements[0].visible):
            return
        if state == "detached" and not elements:
            return
        self.page.clock.advance((timeout or 30000) / 1000)
        raise PlaywrightTimeoutError(f"Locator.wait_for: Timeout {timeout}ms exceeded.")

    # -- actions -------------------------------------------------------------

    def click(self, timeout: Optional[int] = None, **_: Any) -> None:
        element = self._one()
        if element.click_error is not None:
            raise element.click_error
        element.clicks += 1
        element.activate()

    def evaluate(self, script: str, arg: Any = None) -> Any:
        element = self._one()
        if element.stale_evaluations > 0:
            element.stale_evaluations -= 1
            raise PlaywrightError(STALE_MESSAGE)
        self.page.scripts.append(script)
        if "elementFromPoint" in script:
            return element.unobstructed
        if "el.click()" in script:
            if element.forced_error is not None:
                raise element.forced_error
            element.forced_clicks += 1
            element.activate()
            return None
        if "isConnected" in script:
            return element.connected
        return None

    def fill(self, value: str, timeout: Optional[int] = None) -> None:
        self._one().value = value

    def press_sequentially(self, text: str, timeout: Optional[int] = None) -> None:
        self._one().value += text


class FakeElementHandle:
    """Bound to one element; never re-resolves a selector."""

    def __init__(self, element: FakeElement) -> None:
        self.element = element
        self.evaluations = 0

    def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluations += 1
        if "isConnected" in script:
            return self.element.connected
        return None


class FakeMouse:
    def __init__(self, page: "FakePage") -> None:
        self.page = page
        self.moves: List[tuple] = []
        self.clicks: List[tuple] = []
        self.on_click: Optional[Callable[[], None]] = None

    def move(self, x: float, y: float) -> None:
        self.moves.append((x, y))

    def click(self, x: float, y: float) -> None:
        if self.page.mouse_error is not None:
            raise self.page.mouse_error
        self.clicks.append((x, y))
        if self.on_click is not None:
            self.on_click()


class FakePage:
    """Selector registry that answers ``locator``/``get_by_*`` lookups."""

    def __init__(self, clock: Optional[FakeClock] = None, url: str = "https://app.example/home") -> None:
        self.clock = clock or FakeClock()
        self.url = url
        self.registry: Dict[str, Any] = {}
        self.queries: List[tuple] = []
        self.scripts: List[str] = []
        self.scrolls: List[int] = []
        self.shots: List[str] = []
        self.mouse = FakeMouse(self)
        self.mouse_error: Optional[BaseException] = None
        self.screenshot_error: Optional[BaseException] = None
        self.ready_state = "complete"
        self.network_busy = False
        self.dom_idle = True
        self.selector_waits: List[tuple] = []

    def register(self, selector: str, elements: Any) -> None:
        self.registry[selector] = elements

    def lookup(self, selector: str) -> List[FakeElement]:
        value = self.registry.get(selector, [])
        if callable(value):
            value = value()
        if isinstance(value, BaseException):
            raise value
        return list(value or [])

    # -- locators ------------------------------------------------------------

    def locator(self, selector: str) -> FakeLocator:
        self.queries.append(("locator", selector))
        return FakeLocator(self, lambda: self.lookup(selector))

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        self.queries.append(("text", text))
        return FakeLocator(self, lambda: self.lookup(f"text={text}"))

    def get_by_role(self, role: str, name: Optional[str] = None, exact: bool = False) -> FakeLocator:
        self.queries.append(("role", role, name))
        key = f'role={role}[name="{name}"]' if name else f"role={role}"
        return FakeLocator(self, lambda: self.lookup(key))

    # -- page level ----------------------------------------------------------

    def evaluate(self, script: str, arg: Any = None) -> Any:
        self.scripts.append(script)
        if "scrollBy" in script:
            self.scrolls.append(arg)
            return None
        if "readyState" in script:
            return self.ready_state
        if "MutationObserver" in script:
            return self.dom_idle
        return None

    def wait_for_url(self, predicate: Callable[[str], bool], *, timeout: Optional[int] = None, wait_until: str = "load") -> None:
        if predicate(self.url):
            return
        self.clock.advance((timeout or 30000) / 1000)
        raise PlaywrightTimeoutError(f"Page.wait_for_url: Timeout {timeout}ms exceeded.")

    def wait_for_timeout(self, timeout: float) -> None:
        self.clock.advance(timeout / 1000)

    def wait_for_load_state(self, state: str = "load", timeout: Optional[int] = None) -> None:
        if self.network_busy:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {state}")

    def wait_for_selector(self, selector: str, *, state: str = "visible", timeout: Optional[int] = None) -> None:
        self.selector_waits.append((selector, timeout))
        shown = [el for el in self.lookup(selector) if el.visible]
        if state == "hidden" and not shown:
            return
        if state == "visible" and shown:
            return
        self.clock.advance((timeout or 30000) / 1000)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        data = b"\x89PNG fake"
        if path:
            Path(path).write_bytes(data)
            self.shots.append(path)
        return data


def make_row(name: str, office: str = "HQ", due: str = "2025-03-31", kind: str = "Filing") -> FakeElement:
    name_cell = FakeElement(name, children={NAME_INNER: [FakeElement(name)]})
    cells = [name_cell, FakeElement(kind), FakeElement(due), FakeElement(office)]
    return FakeElement(" ".join([name, kind, due, office]), children={"td": cells})


class GridApp:
    """A paginated table wired into a :class:`FakePage`.

    ``pages`` holds the row names of each page; ``index`` is the page shown.
    The pager uses Ant Design style selectors and re-renders on every access.
    """

    NEXT = "li.ant-pagination-next button"
    PREV = "li.ant-pagination-prev button"
    ACTIVE = "li.ant-pagination-item-active"

    def __init__(
        self,
        page: FakePage,
        pages: List[List[str]],
        *,
        start: int = 0,
        indicator: bool = True,
        next_noop: bool = False,
    ) -> None:
        self.page = page
        self.pages = pages
        self.index = start
        self.indicator = indicator
        self.next_noop = next_noop
        self.forward_clicks = 0
        self.backward_clicks = 0
        selectors = GridSelectors()
        page.register(selectors.rows, self._rows)
        page.register(selectors.row_titles, self._titles)
        page.register(selectors.active_page, self._active)
        page.register(self.ACTIVE, self._active)
        page.register(self.NEXT, lambda: [self._button(self.index < len(self.pages) - 1, self._forward)])
        page.register(self.PREV, lambda: [self._button(self.index > 0, self._backward)])

    def current_names(self) -> List[str]:
        return list(self.pages[self.index])

    def _rows(self) -> List[FakeElement]:
        return [make_row(name) for name in self.pages[self.index]]

    def _titles(self) -> List[FakeElement]:
        return [FakeElement(name) for name in self.pages[self.index]]

    def _active(self) -> List[FakeElement]:
        return [FakeElement(str(self.index + 1))] if self.indicator else []

    @staticmethod
    def _button(enabled: bool, on_click: Callable[[], None]) -> FakeElement:
        attrs = {} if enabled else {"disabled": "", "class": "ant-pagination-disabled"}
        return FakeElement("", enabled=enabled, attrs=attrs, on_click=on_click)

    def _forward(self) -> None:
        self.forward_clicks += 1
        if not self.next_noop and self.index < len(self.pages) - 1:
            self.index += 1

    def _backward(self) -> None:
        self.backward_clicks += 1
        if self.index > 0:
            self.index -= 1


def grid_pages(count: int, size: int) -> List[List[str]]:
    return [[f"Item {page}-{row}" for row in range(1, size + 1)] for page in range(1, count + 1)]

from __future__ import annotations

import os
import tempfile
import zlib
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pytest

# Keep log files and stored artifacts out of the working tree
_TMP_ROOT = tempfile.mkdtemp(prefix="capture_tests_")
os.environ.setdefault("CAPTURE_LOG_DIR", os.path.join(_TMP_ROOT, "logs"))
os.environ.setdefault("CAPTURE_ARTIFACT_ROOT", os.path.join(_TMP_ROOT, "artifacts"))
os.environ.setdefault("CAPTURE_SCAN_DIRS", os.path.join(_TMP_ROOT, "scan"))

from capture_config import CaptureConfig  # noqa: E402
from acquisition.cancellation import CancelToken  # noqa: E402
from acquisition.locators import ElementLocator  # noqa: E402
from acquisition.models import AcquisitionSession, CandidateArtifact  # noqa: E402
from acquisition.page_prep import ISOLATED_ID  # noqa: E402
from acquisition.strategies import AcquisitionStrategy, StrategyContext  # noqa: E402
from files import SessionContext  # noqa: E402


NOTICE_LINES = (
    "Department of the Treasury",
    "Internal Revenue Service",
    "Cincinnati OH 45999-0023",
    "CP 575 A",
    "We assigned you an employer identification number (EIN)",
    "Your EIN is 12-3456789",
    "Keep this notice in your permanent records",
)

WEB_PAGE_LINES = (
    "<html><head><link rel=stylesheet></head>",
    "<div class=menu>Skip to main content</div>",
    "Sign in | Log out | Cookie policy",
    "<script>var x = function() {};</script>",
)


def _escape(line: str) -> bytes:
    raw = line.encode("latin-1")
    return raw.replace(b"\\", b"\\\\").replace(b"(", b"\\(").replace(b")", b"\\)")


def show_lines(lines: Sequence[str]) -> bytes:
    """Content stream that shows each line on its own row."""
    ops = [b"BT", b"/F1 12 Tf", b"14 TL", b"72 720 Td"]
    for line in lines:
        ops.append(b"(" + _escape(line) + b") Tj")
        ops.append(b"T*")
    ops.append(b"ET")
    return b"\n".join(ops)


def _assemble(stream: bytes, compress: bool, pad: int) -> bytes:
    filter_entry = b" /Filter /FlateDecode" if compress else b""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792]"
        b" /Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length " + str(len(stream)).encode() + filter_entry + b" >>\nstream\n"
        + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    if pad == 1:
        out += b"\n"
    elif pad > 1:
        out += b"%" + b" " * (pad - 2) + b"\n"

    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += str(number).encode() + b" 0 obj\n" + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 " + str(len(objects) + 1).encode() + b"\n0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size " + str(len(objects) + 1).encode() + b" /Root 1 0 R >>\n"
    out += b"startxref\n" + str(xref_at).encode() + b"\n%%EOF\n"
    return bytes(out)


def make_pdf(
    lines: Sequence[str] = NOTICE_LINES,
    size: Optional[int] = None,
    compress: bool = False,
    content: Optional[bytes] = None,
) -> bytes:
    """
    Single-page PDF showing `lines` (or the raw `content` stream).

    With `size`, a comment after the header pads the file to exactly that
    many bytes.
    """
    raw = content if content is not None else show_lines(lines)
    stream = zlib.compress(raw) if compress else raw

    data = _assemble(stream, compress, 0)
    if size is None:
        return data
    assert size >= len(data), "size too small for content"

    pad = size - len(data)
    for _ in range(3):
        data = _assemble(stream, compress, pad)
        if len(data) == size:
            return data
        # startxref grew a digit
        pad -= len(data) - size
    raise AssertionError(f"could not pad PDF to {size} bytes")


def notice_pdf(size: int = 17_000) -> bytes:
    return make_pdf(NOTICE_LINES, size=size)


def web_page_pdf(size: int = 17_000) -> bytes:
    return make_pdf(WEB_PAGE_LINES, size=size)


class FakeElement:
    def __init__(self, name: str, href: Optional[str] = None):
        self.name = name
        self.href = href

    def __repr__(self) -> str:
        return f"FakeElement({self.name!r})"


class FakeDriver:
    """
    In-memory AutomationDriver.

    Windows are handles mapped to URLs; scripts are recognised by content and
    answered from the attributes below.
    """

    def __init__(
        self,
        url: str = "https://sa.www4.irs.gov/modiein/individual/confirmation.jsp",
        html: str = "<html><body><main>EIN assigned</main></body></html>",
        pdf: bytes = b"",
    ):
        self.windows: Dict[str, str] = {"main": url}
        self.handles: List[str] = ["main"]
        self.current = "main"
        self.page_source = html
        self.pdf = pdf
        self.elements: Dict[str, List[FakeElement]] = {}
        self.export_functions: List[str] = []
        self.blobs: Dict[str, Optional[str]] = {}
        self.isolate_result = True
        self.prep_error: Optional[Exception] = None
        self.print_error: Optional[Exception] = None
        self.on_click: Optional[Callable[[FakeElement], None]] = None

        self.scripts: List[tuple] = []
        self.clicked: List[FakeElement] = []
        self.context_clicked: List[FakeElement] = []
        self.shortcuts: List[tuple] = []
        self.print_calls: List[Dict[str, Any]] = []
        self.closed: List[str] = []
        self.called_functions: List[str] = []
        self.download_dir: Optional[str] = None

    # windows
    @property
    def current_url(self) -> str:
        return self.windows[self.current]

    @property
    def window_handles(self) -> List[str]:
        return list(self.handles)

    @property
    def current_window_handle(self) -> str:
        return self.current

    def switch_to_window(self, handle: str) -> None:
        assert handle in self.handles, f"no such window {handle}"
        self.current = handle

    def close_window(self) -> None:
        self.handles.remove(self.current)
        self.closed.append(self.current)

    def open_window(self, handle: str, url: str) -> None:
        self.handles.append(handle)
        self.windows[handle] = url

    # elements
    def find_elements(self, locator) -> List[FakeElement]:
        return list(self.elements.get(locator.value, []))

    def click(self, element: FakeElement) -> None:
        self.clicked.append(element)
        if self.on_click is not None:
            self.on_click(element)

    def context_click(self, element: FakeElement) -> None:
        self.context_clicked.append(element)

    def send_shortcut(self, keys: Sequence[str]) -> None:
        self.shortcuts.append(tuple(keys))

    # scripts
    def execute_script(self, script: str, *args: Any) -> Any:
        self.scripts.append((script, args))
        if ISOLATED_ID in args and len(args) == 4:
            if self.prep_error is not None:
                raise self.prep_error
            return self.isolate_result
        if ISOLATED_ID in args:
            return self.isolate_result
        if "for (var name in window)" in script:
            return list(self.export_functions)
        if "window[arguments[0]]()" in script:
            self.called_functions.append(args[0])
            return True
        return None

    def execute_async_script(self, script: str, *args: Any) -> Any:
        self.scripts.append((script, args))
        return self.blobs.get(args[0])

    def print_to_pdf(self, options: Dict[str, Any]) -> bytes:
        self.print_calls.append(dict(options))
        if self.print_error is not None:
            raise self.print_error
        return self.pdf

    # session
    def get_cookies(self) -> List[Dict[str, Any]]:
        return [{"name": "JSESSIONID", "value": "abc123"}, {"name": "lb", "value": "n1"}]

    def get_user_agent(self) -> Optional[str]:
        return "FakeAgent/1.0"

    def set_download_directory(self, path: str) -> bool:
        self.download_dir = path
        return True


class StubStrategy(AcquisitionStrategy):
    """Yields fixed payloads, optionally running a hook or raising first."""

    def __init__(
        self,
        strategy_id: str,
        payloads: Iterable[bytes] = (),
        filename: Optional[str] = None,
        error: Optional[Exception] = None,
        hook: Optional[Callable[[Any], None]] = None,
    ):
        self.strategy_id = strategy_id
        self.payloads = list(payloads)
        self.filename = filename
        self.error = error
        self.hook = hook
        self.calls = 0
        self.yielded = 0

    def candidates(self, ctx):
        self.calls += 1
        if self.hook is not None:
            self.hook(ctx)
        if self.error is not None:
            raise self.error
        for data in self.payloads:
            self.yielded += 1
            yield CandidateArtifact(data=data, source_strategy_id=self.strategy_id, inferred_filename=self.filename)


@pytest.fixture
def fast_config(tmp_path) -> CaptureConfig:
    temp_root = tmp_path / "sessions"
    temp_root.mkdir()
    return CaptureConfig(
        scan_dirs=(),
        poll_interval_s=0.0,
        stable_polls=1,
        download_timeout_s=0.0,
        trigger_settle_s=0.0,
        http_timeout_s=1.0,
        fetch_retries=0,
        backoff_s=0.0,
        temp_root=str(temp_root),
        artifact_root=str(tmp_path / "artifacts"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


class FakeResponse:
    """Just enough of requests.Response for the fetcher."""

    def __init__(self, status_code: int = 200, content: bytes = b"", headers: Optional[Dict[str, str]] = None,
                 url: str = ""):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.url = url

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


def pdf_only_when_asked(url, headers=None, **kwargs) -> FakeResponse:
    """Server stand-in that answers with the notice only to an explicit PDF Accept header."""
    accept = (headers or {}).get("Accept", "")
    if accept.startswith("application/pdf"):
        return FakeResponse(200, notice_pdf(), {"Content-Type": "application/pdf"}, url)
    return FakeResponse(200, b"<html>Sign in</html>", {"Content-Type": "text/html; charset=utf-8"}, url)


def make_ctx(driver, config, tmp_path, **overrides) -> StrategyContext:
    """StrategyContext over a FakeDriver with a fresh download dir under tmp_path."""
    download_dir = tmp_path / "downloads"
    download_dir.mkdir(exist_ok=True)
    values = dict(
        driver=driver,
        session=AcquisitionSession("Acme Holdings LLC", correlation_key="12-3456789"),
        session_ctx=SessionContext.from_driver(driver),
        config=config,
        cancel=CancelToken(),
        download_dir=str(download_dir),
        locator=ElementLocator(driver),
    )
    values.update(overrides)
    return StrategyContext(**values)

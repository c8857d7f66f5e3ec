"""
HTML to PDF rendering through headless Chromium (Playwright sync API).

Each call launches its own browser, loads the HTML, runs a cleanup script
that flattens the interactive parts of an apostila (collapsed sections,
audio buttons, spoilers, dark mode) and prints an A4 PDF. The browser is
always closed before returning.

The sync API must not run on a thread with a running asyncio loop; the
HTTP layer calls render() from plain ``def`` endpoints, which FastAPI
executes in its threadpool.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .errors import EmptyPdfError, PdfRenderError

logger = logging.getLogger(__name__)

CHROMIUM_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--single-process",
    "--no-zygote",
]

CLEANUP_SCRIPT = """
(() => {
    document.querySelectorAll('h2[role="button"]').forEach(h2 => {
        h2.setAttribute("aria-expanded", "true");
        let next = h2.nextElementSibling;
        if (next && next.classList.contains('ouvir')) {
            next = next.nextElementSibling;
        }
        if (next && next.classList.contains('content')) {
            next.removeAttribute('hidden');
        }
    });

    const controls = document.querySelector('.controls');
    if (controls) {
        controls.remove();
    }

    document.querySelectorAll('.ouvir').forEach(button => button.remove());

    document.querySelectorAll('.toggle-icon').forEach(icon => {
        icon.textContent = " ";
    });

    document.querySelectorAll('details.spoiler').forEach(details => {
        const replacement = document.createElement('div');
        replacement.innerHTML = details.innerHTML;
        details.parentNode.replaceChild(replacement, details);
    });

    const script = document.querySelector('script');
    if (script) {
        script.remove();
    }

    document.body.classList.remove('dark');
})()
"""


class PdfRenderer:
    def __init__(
        self,
        executable_path: Optional[str] = None,
        timeout_seconds: float = 30.0,
        settle_seconds: float = 2.0,
        paper_width: str = "8.27in",
        paper_height: str = "11.69in",
        margins: Optional[Dict[str, str]] = None,
    ):
        self.executable_path = executable_path or None
        self.timeout_seconds = timeout_seconds
        self.settle_seconds = settle_seconds
        self.paper_width = paper_width
        self.paper_height = paper_height
        self.margins = margins or {"top": "1in", "bottom": "1in", "left": "0.5in", "right": "0.5in"}

    @classmethod
    def from_settings(cls, pdf_settings: Any) -> "PdfRenderer":
        return cls(
            executable_path=pdf_settings.chromium_path,
            timeout_seconds=pdf_settings.timeout_seconds,
            settle_seconds=pdf_settings.settle_seconds,
            paper_width=pdf_settings.paper_width,
            paper_height=pdf_settings.paper_height,
            margins={
                "top": pdf_settings.margin_top,
                "bottom": pdf_settings.margin_bottom,
                "left": pdf_settings.margin_left,
                "right": pdf_settings.margin_right,
            },
        )

    def pdf_options(self) -> Dict[str, Any]:
        return {
            "print_background": True,
            "width": self.paper_width,
            "height": self.paper_height,
            "margin": dict(self.margins),
        }

    def render(self, html: str) -> bytes:
        """
        Render an HTML document to PDF bytes.

        Raises:
            EmptyPdfError: the cleaned page has no visible body text
            PdfRenderError: Chromium failed to start, load or print, or the
                timeout elapsed
        """
        timeout_ms = int(self.timeout_seconds * 1000)
        started = time.perf_counter()

        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(
                    headless=True,
                    executable_path=self.executable_path,
                    args=CHROMIUM_ARGS,
                    timeout=timeout_ms,
                )
                try:
                    page = browser.new_page()
                    page.set_default_timeout(timeout_ms)
                    page.set_content(html, wait_until="load", timeout=timeout_ms)
                    page.wait_for_selector("body", state="attached")
                    page.evaluate(CLEANUP_SCRIPT)
                    page.wait_for_timeout(self.settle_seconds * 1000)
                    body_text = page.inner_text("body")
                    pdf = page.pdf(**self.pdf_options())
                finally:
                    browser.close()
        except PlaywrightError as exc:
            logger.error("PDF rendering failed: %s", exc)
            raise PdfRenderError(f"failed to render PDF: {exc}") from exc

        if not body_text.strip():
            raise EmptyPdfError("empty PDF: the HTML did not render any content")

        logger.info(
            "Rendered %d byte PDF in %d ms",
            len(pdf),
            int((time.perf_counter() - started) * 1000),
        )
        return pdf

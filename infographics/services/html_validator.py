"""HTML validation for generated pages.

Two independent checks run concurrently against a complete HTML document:

- Markup check: POST the document to a Nu HTML checker (validator.w3.org by
  default) and keep its error-level messages. If the service is down, slow or
  returns garbage, the check reports nothing. It must never block generation.
- Runtime check: load the document in a fresh headless Chromium and record
  script errors and failed sub-resource loads. Bounded by a settle delay and a
  hard timeout; the browser is closed on every exit path.

Both return lists of ValidationMessage. Messages only live for the duration of
one validate/repair loop and are never persisted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Any, Optional

import httpx
from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeoutError

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"
INFO = "info"

ORIGIN_MARKUP = "markup"
ORIGIN_RUNTIME = "runtime"

# Chromium flags needed inside containers.
_BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

# Chromium echoes every failed sub-resource as a console error too; those are
# already reported by the network listeners.
_RESOURCE_CONSOLE_PREFIX = "Failed to load resource"


@dataclass(frozen=True)
class ValidationMessage:
    """A single problem found in a candidate document."""

    severity: str          # error, warning or info; only error blocks
    text: str
    origin: str            # markup (conformance checker) or runtime (browser)
    extract: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    url: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> dict[str, Any]:
        """Compact dict for the repair prompt; unset fields are dropped."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_nu_message(cls, message: dict[str, Any]) -> "ValidationMessage":
        """Convert one entry of the Nu checker's ``messages`` array."""
        kind = message.get("type")
        if kind == "error":
            severity = ERROR
        elif message.get("subType") == "warning":
            severity = WARNING
        else:
            severity = INFO
        return cls(
            severity=severity,
            text=str(message.get("message", "")),
            origin=ORIGIN_MARKUP,
            extract=message.get("extract"),
            line=message.get("lastLine"),
            column=message.get("lastColumn"),
        )


def blocking(messages: list[ValidationMessage]) -> list[ValidationMessage]:
    """Keep only the messages that must be repaired."""
    return [m for m in messages if m.is_blocking]


class HtmlValidator:
    """Runs the markup and runtime checks for one candidate document."""

    def __init__(
        self,
        markup_url: str = "https://validator.w3.org/nu/?out=json",
        markup_timeout: float = 30.0,
        runtime_settle_ms: int = 1000,
        runtime_timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.markup_url = markup_url
        self.markup_timeout = markup_timeout
        self.runtime_settle_ms = runtime_settle_ms
        self.runtime_timeout = runtime_timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "HtmlValidator":
        return cls(
            markup_url=settings.markup_validator_url,
            markup_timeout=settings.markup_validator_timeout,
            runtime_settle_ms=settings.runtime_settle_ms,
            runtime_timeout=settings.runtime_timeout,
        )

    async def validate(self, html: str) -> list[ValidationMessage]:
        """Run both checks concurrently and concatenate their findings (markup first).

        A check that raises counts as having found nothing.
        """
        markup, runtime = await asyncio.gather(
            self.markup_check(html),
            self.runtime_check(html),
            return_exceptions=True,
        )
        if isinstance(markup, BaseException):
            logger.warning("Markup check raised, treating as no errors: %s", markup)
            markup = []
        if isinstance(runtime, BaseException):
            logger.warning("Runtime check raised, treating as no errors: %s", runtime)
            runtime = []
        return list(markup) + list(runtime)

    # ------------------------------------------------------------------
    # Markup check
    # ------------------------------------------------------------------

    async def markup_check(self, html: str) -> list[ValidationMessage]:
        """Submit the document to the Nu checker and return its errors.

        Fails open: transport errors, non-2xx responses and unreadable
        bodies all yield an empty list.
        """
        try:
            async with httpx.AsyncClient(timeout=self.markup_timeout, transport=self._transport) as client:
                response = await client.post(
                    self.markup_url,
                    content=html.encode("utf-8"),
                    headers={
                        "Content-Type": "text/html; charset=utf-8",
                        "User-Agent": "InfogrAIphics-Validator/1.0",
                    },
                )
        except httpx.HTTPError as e:
            logger.warning("Markup validator unreachable, skipping markup check: %s", e)
            return []

        if not response.is_success:
            logger.warning(
                "Markup validator returned HTTP %s, skipping markup check",
                response.status_code,
            )
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Markup validator returned a non-JSON body, skipping markup check")
            return []

        messages = payload.get("messages") if isinstance(payload, dict) else None
        if not isinstance(messages, list):
            logger.warning("Markup validator response has no messages list, skipping markup check")
            return []

        errors = [
            ValidationMessage.from_nu_message(m)
            for m in messages
            if isinstance(m, dict) and m.get("type") == "error"
        ]
        logger.debug("Markup check: %d error(s) of %d message(s)", len(errors), len(messages))
        return errors

    # ------------------------------------------------------------------
    # Runtime check
    # ------------------------------------------------------------------

    async def runtime_check(self, html: str) -> list[ValidationMessage]:
        """Render the document headlessly and return script and loading errors.

        On timeout, whatever was observed before the deadline is returned.
        If the browser cannot be started or crashes, returns an empty list.
        """
        errors: list[ValidationMessage] = []
        try:
            await asyncio.wait_for(self._render(html, errors), timeout=self.runtime_timeout)
        except (asyncio.TimeoutError, PlaywrightTimeoutError):
            logger.info(
                "Runtime check stopped after %.1fs with %d error(s) observed",
                self.runtime_timeout, len(errors),
            )
        except Exception as e:
            logger.warning("Runtime check could not run, treating as no errors: %s", e)
            return []

        logger.debug("Runtime check: %d error(s)", len(errors))
        return list(errors)

    async def _render(self, html: str, errors: list[ValidationMessage]) -> None:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True, args=_BROWSER_ARGS)
            try:
                context = await browser.new_context()
                page = await context.new_page()

                page.on("console", lambda msg: self._on_console(msg, errors))
                page.on("pageerror", lambda err: errors.append(ValidationMessage(
                    severity=ERROR,
                    text=f"Uncaught JavaScript error: {getattr(err, 'message', err)}",
                    origin=ORIGIN_RUNTIME,
                )))
                page.on("requestfailed", lambda request: errors.append(ValidationMessage(
                    severity=ERROR,
                    text=f"Failed to load resource: {request.failure or 'network error'}",
                    origin=ORIGIN_RUNTIME,
                    extract=f"URL: {request.url}",
                    url=request.url,
                )))
                page.on("response", lambda response: self._on_response(response, errors))

                await page.set_content(
                    html,
                    wait_until="domcontentloaded",
                    timeout=self.runtime_timeout * 1000,
                )
                # Let async scripts and late resource loads fail.
                await asyncio.sleep(self.runtime_settle_ms / 1000)
            finally:
                await browser.close()

    @staticmethod
    def _on_console(msg, errors: list[ValidationMessage]) -> None:
        if msg.type != "error":
            return
        text = msg.text
        if text.startswith(_RESOURCE_CONSOLE_PREFIX):
            return
        location = msg.location or {}
        errors.append(ValidationMessage(
            severity=ERROR,
            text=f"JavaScript console error: {text}",
            origin=ORIGIN_RUNTIME,
            line=location.get("lineNumber"),
            column=location.get("columnNumber"),
            url=location.get("url") or None,
        ))

    @staticmethod
    def _on_response(response, errors: list[ValidationMessage]) -> None:
        # Redirects are followed; only the failing final hop is an error.
        if response.status < 400:
            return
        errors.append(ValidationMessage(
            severity=ERROR,
            text=f"Failed to load resource: HTTP {response.status}",
            origin=ORIGIN_RUNTIME,
            extract=f"URL: {response.url}",
            url=response.url,
        ))

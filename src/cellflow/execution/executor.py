"""Execution of a single ready cell against the text-generation provider."""

import json
import logging
import re
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Optional

from cellflow import CellTimeoutError, ExecutorError, ProviderError, RunCancelledError
from cellflow.execution.prompts import system_prompt_for
from cellflow.models import Cell, CellResult, OutputType
from cellflow.models.cost import CHARS_PER_TOKEN, COST_PER_TOKEN, estimate_cost, estimate_usage
from cellflow.providers.base import ProviderResponse, TextProvider

logger = logging.getLogger(__name__)

STRUCTURED_CELL_TYPES = ("query", "transform")

_FENCED_JSON = re.compile(r"```json\n?([\s\S]*?)\n?```")

# How often a waiting executor re-checks the cancel event
_CANCEL_POLL_SECONDS = 0.1


def extract_json(text: str) -> Optional[Any]:
    """Extract structured data from a response.

    Looks for a fenced ```json block first, then parses the whole response
    when it looks like a JSON object or array.

    Args:
        text: Raw response text

    Returns:
        Parsed value, or None if no JSON could be extracted
    """
    match = _FENCED_JSON.search(text)
    candidate = None
    if match:
        candidate = match.group(1)
    else:
        stripped = text.strip()
        if stripped.startswith("{") or stripped.startswith("["):
            candidate = stripped

    if candidate is None:
        return None

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def parse_output(cell_type: str, text: str) -> tuple[Any, OutputType]:
    """Interpret a raw response according to cell type.

    Structured-output parse failures fall back to plain text.

    Returns:
        tuple: (output, output_type)
    """
    if cell_type in STRUCTURED_CELL_TYPES:
        parsed = extract_json(text)
        if parsed is not None:
            return parsed, "json"
    return text, "text"


def parse_condition(text: str) -> Optional[bool]:
    """Read the boolean verdict a condition cell leads with."""
    match = re.match(r"\W*(true|false)\b", text.strip(), re.IGNORECASE)
    if not match:
        return None
    return match.group(1).lower() == "true"


class CellExecutor:
    """Execute one cell and produce a typed result.

    Builds the cell type's system instruction, calls the provider bounded by
    the cell's timeout, and parses the response. Nothing is persisted here;
    retry and stop policy belong to the run coordinator.
    """

    def __init__(
        self,
        provider: TextProvider,
        chars_per_token: int = CHARS_PER_TOKEN,
        cost_per_token: float = COST_PER_TOKEN,
    ):
        """Initialize cell executor.

        Args:
            provider: Text-generation provider
            chars_per_token: Divisor for estimating tokens when none are reported
            cost_per_token: Nominal cost per estimated token
        """
        self.provider = provider
        self.chars_per_token = chars_per_token
        self.cost_per_token = cost_per_token
        # Provider call left running by the last timeout or cancellation
        self._abandoned: Optional[Future] = None

    def execute(
        self,
        cell: Cell,
        content: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> CellResult:
        """Execute a cell with already-interpolated content.

        Args:
            cell: Cell being executed
            content: Interpolated cell content
            cancel_event: Set to abandon the in-flight provider call

        Returns:
            CellResult: Parsed output with usage

        Raises:
            CellTimeoutError: If the provider exceeds cell.timeout_ms
            ProviderError: If the provider fails
            RunCancelledError: If cancel_event is set while waiting
        """
        system_prompt = system_prompt_for(cell.cell_type)
        start = time.monotonic()

        response = self._call_provider(cell, system_prompt, content, cancel_event)

        duration_ms = int((time.monotonic() - start) * 1000)
        output, output_type = parse_output(cell.cell_type, response.text)

        reasoning = f"Processed {cell.cell_type} cell with {len(content)} chars input"
        if cell.cell_type == "condition":
            verdict = parse_condition(response.text)
            if verdict is not None:
                reasoning += f"; condition evaluated to {str(verdict).lower()}"

        if response.metrics is not None:
            usage = response.metrics.usage
            tokens_input = usage.total_input_tokens
            tokens_output = usage.output_tokens
            cost = response.metrics.cost.total_cost
            provider_metrics = response.metrics.to_dict()
            estimated = False
        else:
            usage = estimate_usage(content, response.text, self.chars_per_token)
            tokens_input = usage.input_tokens
            tokens_output = usage.output_tokens
            cost = estimate_cost(usage.total_tokens, self.cost_per_token)
            provider_metrics = None
            estimated = True

        logger.info(
            f"Cell {cell.id} ({cell.cell_type}) produced {output_type} output "
            f"in {duration_ms}ms, {tokens_input + tokens_output} tokens"
        )

        return CellResult(
            output=output,
            output_type=output_type,
            reasoning=reasoning,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            cost=cost,
            duration_ms=duration_ms,
            estimated=estimated,
            provider_metrics=provider_metrics,
        )

    def _call_provider(
        self,
        cell: Cell,
        system_prompt: str,
        content: str,
        cancel_event: Optional[threading.Event],
    ) -> ProviderResponse:
        """Run the provider call in a worker thread bounded by the cell timeout."""
        timeout = cell.timeout_ms / 1000
        self._settle_abandoned(timeout)
        deadline = time.monotonic() + timeout

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"cellflow-{cell.id}")
        try:
            future = pool.submit(self.provider.generate, system_prompt, content, timeout)

            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._abandon(future)
                    raise CellTimeoutError(f"Cell {cell.id} timed out after {cell.timeout_ms}ms")

                done, _ = wait([future], timeout=min(remaining, _CANCEL_POLL_SECONDS), return_when=FIRST_COMPLETED)
                if done:
                    break

                if cancel_event is not None and cancel_event.is_set():
                    self._abandon(future)
                    raise RunCancelledError(f"Run cancelled while cell {cell.id} was executing")

            try:
                return future.result()
            except ExecutorError:
                raise
            except Exception as e:
                raise ProviderError(f"Provider failed for cell {cell.id}: {e}") from e
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _abandon(self, future: Future) -> None:
        # Python threads cannot be stopped; the call may still be running.
        future.cancel()
        if not future.done():
            self._abandoned = future

    def _settle_abandoned(self, timeout: float) -> None:
        """Wait for a previously abandoned call so provider calls never overlap.

        Args:
            timeout: Longest wait in seconds, normally the next cell's timeout
        """
        previous, self._abandoned = self._abandoned, None
        if previous is None or previous.done():
            return

        logger.warning(f"Waiting up to {timeout:.1f}s for an abandoned provider call to finish")
        done, _ = wait([previous], timeout=timeout)
        if not done:
            logger.warning("Abandoned provider call still running; issuing the next call anyway")

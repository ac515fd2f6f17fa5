"""
Flow analyzer - runs a complete baseline-versus-candidate comparison.

This module combines source discovery, the language front ends, flow
extraction, endpoint matching and the diff engine:

1. Discover the source files of each version
2. Parse them into handler trees
3. Extract a flow graph per handler
4. Pair endpoints by identity
5. Diff each matched pair

Extraction and diffing run on a thread pool for larger batches. A
cancel event stops the run between tasks; results produced so far are
kept and the report is marked as cancelled.
"""

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

from pydantic import ValidationError

from endpoint_flow_diff.analyzer.diff_engine import DiffEngine
from endpoint_flow_diff.analyzer.endpoint_matcher import (
    EndpointIndex,
    EndpointMatcher,
    IdentityCollisionError,
)
from endpoint_flow_diff.analyzer.flow_extractor import ExtractionError, FlowExtractor
from endpoint_flow_diff.config import Config
from endpoint_flow_diff.models.diff import DiffResult
from endpoint_flow_diff.models.endpoint import EndpointIdentity, ExtractedEndpoint
from endpoint_flow_diff.models.handler_ast import HandlerAST
from endpoint_flow_diff.models.report import (
    AnalysisVersion,
    FlowDiffReport,
    UnanalyzableEndpoint,
)
from endpoint_flow_diff.parser.adapters import (
    AdapterError,
    discover_sources,
    get_adapter,
)


logger = logging.getLogger(__name__)

_DEFAULT_WORKERS = min(os.cpu_count() or 4, 8)

# Progress callback type: (current, total, description) -> None
ProgressCallback = Callable[[int, int, str], None]

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class _FileResult:
    handlers: list[HandlerAST] = field(default_factory=list)
    failure: Optional[UnanalyzableEndpoint] = None


@dataclass
class _HandlerResult:
    endpoint: Optional[ExtractedEndpoint] = None
    failure: Optional[UnanalyzableEndpoint] = None


@dataclass
class VersionAnalysis:
    """Extracted endpoints of one version of the sources."""

    version: AnalysisVersion
    source: Path
    files: list[Path] = field(default_factory=list)
    endpoints: list[ExtractedEndpoint] = field(default_factory=list)
    unanalyzable: list[UnanalyzableEndpoint] = field(default_factory=list)
    collision: Optional[IdentityCollisionError] = None
    cancelled: bool = False

    @property
    def index(self) -> EndpointIndex[ExtractedEndpoint]:
        """
        Index of the extracted endpoints.

        Raises:
            IdentityCollisionError: If two handlers share an identity.
        """
        index: EndpointIndex[ExtractedEndpoint] = EndpointIndex()
        index.register_many(self.endpoints)
        return index


class _TaskRunner:
    """Maps a function over items, in parallel for larger batches."""

    def __init__(self, max_workers: Optional[int], parallel_threshold: int) -> None:
        self.max_workers = max_workers or _DEFAULT_WORKERS
        self.parallel_threshold = parallel_threshold

    def map(
        self,
        func: Callable[[T], R],
        items: Sequence[T],
        cancel_event: Optional[threading.Event] = None,
        on_done: Optional[Callable[[int], None]] = None,
    ) -> tuple[list[R], bool]:
        """
        Apply ``func`` to every item.

        Returns:
            The results of completed items in input order, and whether the
            run was cancelled before all items completed.
        """
        results: dict[int, R] = {}

        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        if self.max_workers == 1 or len(items) < self.parallel_threshold:
            # Sequential for small batches (parallel overhead not worth it)
            for i, item in enumerate(items):
                if cancelled():
                    break
                results[i] = func(item)
                if on_done:
                    on_done(len(results))
        else:
            executor = ThreadPoolExecutor(max_workers=self.max_workers)
            futures: dict[Future[R], int] = {}
            try:
                futures = {executor.submit(func, item): i for i, item in enumerate(items)}
                for future in as_completed(futures):
                    if future.cancelled():
                        continue
                    results[futures[future]] = future.result()
                    if on_done:
                        on_done(len(results))
                    if cancelled():
                        break
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

            # Tasks already running when the run was cancelled finish during shutdown
            for future, i in futures.items():
                if i not in results and not future.cancelled():
                    results[i] = future.result()

        ordered = [results[i] for i in sorted(results)]
        return ordered, len(results) < len(items)


class SourceAnalyzer:
    """
    Extract the flow graphs of every handler below one source root.

    Failures of single files or handlers are recorded as unanalyzable
    endpoints; the rest of the sources are still analyzed.
    """

    def __init__(
        self,
        source_path: Path,
        config: Optional[Config] = None,
        version: AnalysisVersion = AnalysisVersion.BASELINE,
    ) -> None:
        """
        Initialize the source analyzer.

        Args:
            source_path: A source file or a directory to scan.
            config: Optional configuration object.
            version: Which side of a comparison these sources are.
        """
        self.source_path = source_path.resolve()
        self.config = config or Config()
        self.version = version
        self.extractor = FlowExtractor(self.config.extraction)
        self._runner = _TaskRunner(
            self.config.analysis.max_workers,
            self.config.analysis.parallel_threshold,
        )

    def discover(self) -> list[Path]:
        """Source files of this version, sorted by path."""
        return discover_sources(self.source_path, self.config.parser)

    def analyze(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> VersionAnalysis:
        """
        Parse and extract every handler.

        Args:
            cancel_event: Set to stop the run between tasks.
            on_progress: Called with the completed fraction of the work.

        Returns:
            VersionAnalysis with endpoints sorted by identity.

        Raises:
            FileNotFoundError: If the source path does not exist.
        """
        result = VersionAnalysis(version=self.version, source=self.source_path)
        result.files = self.discover()
        logger.info("%s: %d source file(s) in %s", self.version.value, len(result.files), self.source_path)

        def file_done(completed: int) -> None:
            if on_progress:
                on_progress(0.5 * completed / max(len(result.files), 1))

        file_results, cancelled = self._runner.map(self._parse_file, result.files, cancel_event, file_done)
        handlers: list[HandlerAST] = []
        for file_result in file_results:
            handlers.extend(file_result.handlers)
            if file_result.failure is not None:
                result.unanalyzable.append(file_result.failure)

        if not cancelled:
            def handler_done(completed: int) -> None:
                if on_progress:
                    on_progress(0.5 + 0.5 * completed / max(len(handlers), 1))

            handler_results, cancelled = self._runner.map(self._extract, handlers, cancel_event, handler_done)
            for handler_result in handler_results:
                if handler_result.endpoint is not None:
                    result.endpoints.append(handler_result.endpoint)
                if handler_result.failure is not None:
                    result.unanalyzable.append(handler_result.failure)

        result.cancelled = cancelled
        result.endpoints.sort(key=lambda e: (e.identity.sort_key, str(e.handler.file_path), e.handler.line_number))
        try:
            _ = result.index
        except IdentityCollisionError as e:
            logger.error("%s: %s", self.version.value, e)
            result.collision = e
        return result

    def _parse_file(self, file_path: Path) -> _FileResult:
        try:
            adapter = get_adapter(file_path, self.config.parser)
        except ValueError as e:
            return _FileResult(failure=self._failure(file_path, str(e)))
        try:
            return _FileResult(handlers=adapter.parse_file(file_path))
        except AdapterError as e:
            logger.warning("Skipping %s: %s", file_path, e.reason)
            return _FileResult(failure=self._failure(file_path, e.reason))
        except ValidationError as e:
            logger.warning("Skipping %s: malformed handler tree", file_path)
            return _FileResult(failure=self._failure(file_path, f"malformed handler tree: {e}"))

    def _extract(self, handler_ast: HandlerAST) -> _HandlerResult:
        try:
            return _HandlerResult(endpoint=self.extractor.extract_endpoint(handler_ast))
        except ExtractionError as e:
            logger.warning("Cannot analyze %s: %s", handler_ast.identity, e)
            reason = e.reason
        except RecursionError:
            logger.warning("Cannot analyze %s: handler is nested too deeply", handler_ast.identity)
            reason = "Handler is nested too deeply to analyze"
        return _HandlerResult(
            failure=UnanalyzableEndpoint(
                version=self.version,
                file_path=str(handler_ast.handler.file_path),
                reason=reason,
                identity=handler_ast.identity,
                handler_name=handler_ast.handler.qualified_name,
            )
        )

    def _failure(self, file_path: Path, reason: str) -> UnanalyzableEndpoint:
        return UnanalyzableEndpoint(version=self.version, file_path=str(file_path), reason=reason)


class FlowDiffAnalyzer:
    """
    Compare the handler flows of two versions of a code base.

    This is the main orchestration class that:
    1. Extracts the flow graphs of both versions
    2. Pairs endpoints by route path and HTTP method
    3. Diffs the flow graphs of every pair
    4. Assembles the FlowDiffReport
    """

    def __init__(
        self,
        baseline_path: Path,
        candidate_path: Path,
        config: Optional[Config] = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            baseline_path: Sources of the baseline version.
            candidate_path: Sources of the candidate version.
            config: Optional configuration object.
        """
        self.config = config or Config()
        self.baseline = SourceAnalyzer(baseline_path, self.config, AnalysisVersion.BASELINE)
        self.candidate = SourceAnalyzer(candidate_path, self.config, AnalysisVersion.CANDIDATE)
        self.matcher = EndpointMatcher()
        self.engine = DiffEngine(self.config.diff)
        self._runner = _TaskRunner(
            self.config.analysis.max_workers,
            self.config.analysis.parallel_threshold,
        )

    def analyze(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FlowDiffReport:
        """
        Run the comparison and generate a report.

        Args:
            progress_callback: Optional callback for progress updates.
                              Called with (current, total, description).
            cancel_event: Set to stop the run; partial results are kept.

        Returns:
            FlowDiffReport with one DiffResult per matched endpoint.

        Raises:
            FileNotFoundError: If either source path does not exist.
        """
        start_time = time.time()
        errors: list[str] = []
        warnings: list[str] = []

        def report_progress(current: int, total: int, desc: str) -> None:
            if progress_callback:
                progress_callback(current, total, desc)

        def stage(start: int, span: int, desc: str) -> Callable[[float], None]:
            def on_progress(fraction: float) -> None:
                report_progress(start + int(span * fraction), 100, desc)
            return on_progress

        report_progress(0, 100, "Extracting baseline flows...")
        baseline = self.baseline.analyze(cancel_event, stage(0, 40, "Extracting baseline flows..."))

        candidate: Optional[VersionAnalysis] = None
        if not baseline.cancelled:
            report_progress(40, 100, "Extracting candidate flows...")
            candidate = self.candidate.analyze(cancel_event, stage(40, 40, "Extracting candidate flows..."))

        unanalyzable = list(baseline.unanalyzable)
        if candidate is not None:
            unanalyzable.extend(candidate.unanalyzable)

        for analysis in (baseline, candidate):
            if analysis is not None and analysis.collision is not None:
                c = analysis.collision
                errors.append(
                    f"{analysis.version.value}: identity collision for {c.identity}: "
                    f"{c.first.qualified_name} ({c.first.location}) and "
                    f"{c.second.qualified_name} ({c.second.location})"
                )

        cancelled = baseline.cancelled or candidate is None or candidate.cancelled
        results: list[DiffResult] = []
        added: list[EndpointIdentity] = []
        removed: list[EndpointIdentity] = []
        partial: list[EndpointIdentity] = []

        if not errors:
            report_progress(80, 100, "Matching endpoints...")
            candidate_endpoints = candidate.endpoints if candidate is not None else []
            match = self.matcher.match(baseline.endpoints, candidate_endpoints)
            if cancelled:
                # Unpaired endpoints may only be missing because extraction stopped
                partial = sorted(
                    match.added_identities + match.removed_identities,
                    key=lambda identity: identity.sort_key,
                )
            else:
                added, removed = match.added_identities, match.removed_identities

            def diff_pair(pair: tuple[ExtractedEndpoint, ExtractedEndpoint]) -> DiffResult:
                return self.engine.diff_endpoints(*pair)

            def diff_done(completed: int) -> None:
                report_progress(
                    85 + int(10 * completed / max(len(match.pairs), 1)),
                    100,
                    f"Diffing {len(match.pairs)} endpoint(s)...",
                )

            # Pairs extracted before a cancellation are still compared
            results, diff_cancelled = self._runner.map(
                diff_pair,
                match.pairs,
                None if cancelled else cancel_event,
                diff_done,
            )
            cancelled = cancelled or diff_cancelled
            for result in results:
                warnings.extend(result.warnings)

        if cancelled:
            warnings.append("Analysis was cancelled; the report is incomplete")

        duration_ms = (time.time() - start_time) * 1000
        report_progress(100, 100, "Complete!")

        return FlowDiffReport(
            baseline_source=str(self.baseline.source_path),
            candidate_source=str(self.candidate.source_path),
            results=results,
            added_endpoints=added,
            removed_endpoints=removed,
            partial_endpoints=partial,
            unanalyzable=unanalyzable,
            cancelled=cancelled,
            analysis_duration_ms=duration_ms,
            errors=errors,
            warnings=warnings,
        )

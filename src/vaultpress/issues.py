"""Diagnostic issues collected during a processing run.

Every recoverable problem (a corrupt image, a broken wikilink, a plugin that
failed to start) becomes a `ProcessingIssue` instead of an exception. The
collector is shared by the processor and all plugins, so it is thread-safe;
the final `IssueReport` is written to `processor-issues.json`.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(str, Enum):
    BROKEN_LINK = "broken-link"
    MISSING_MEDIA = "missing-media"
    MEDIA_PROCESSING_ERROR = "media-processing-error"
    SLUG_CONFLICT = "slug-conflict"
    EMBEDDING_ERROR = "embedding-error"
    DATABASE_ERROR = "database-error"
    PLUGIN_ERROR = "plugin-error"
    PARSE_ERROR = "parse-error"
    FILE_ACCESS = "file-access"
    CONFIGURATION = "configuration"
    OTHER = "other"


class IssueModule(str, Enum):
    MARKDOWN_PARSER = "markdown-parser"
    IMAGE_PROCESSOR = "image-processor"
    LINK_RESOLVER = "link-resolver"
    SLUG_GENERATOR = "slug-generator"
    FILE_SYSTEM = "file-system"
    TEXT_EMBEDDINGS = "text-embeddings"
    IMAGE_EMBEDDINGS = "image-embeddings"
    SIMILARITY = "similarity"
    DATABASE = "database"
    PLUGIN_MANAGER = "plugin-manager"
    PROCESSOR = "processor"


_LOG_LEVELS = {
    IssueSeverity.ERROR: logging.ERROR,
    IssueSeverity.WARNING: logging.WARNING,
    IssueSeverity.INFO: logging.INFO,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ProcessingIssue:
    id: str
    timestamp: str
    severity: IssueSeverity
    category: IssueCategory
    module: IssueModule
    message: str
    file_path: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "severity": self.severity.value,
            "category": self.category.value,
            "module": self.module.value,
            "message": self.message,
        }
        if self.file_path is not None:
            d["filePath"] = self.file_path
        if self.context:
            d["context"] = self.context
        return d


@dataclass(frozen=True)
class IssueSummary:
    total_issues: int
    error_count: int
    warning_count: int
    info_count: int
    files_affected: int
    category_counts: dict[str, int]
    module_counts: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalIssues": self.total_issues,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "infoCount": self.info_count,
            "filesAffected": self.files_affected,
            "categoryCounts": self.category_counts,
            "moduleCounts": self.module_counts,
        }


@dataclass(frozen=True)
class IssueReport:
    issues: tuple[ProcessingIssue, ...]
    summary: IssueSummary
    process_start_time: str
    process_end_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary.to_dict(),
            "metadata": {
                "processStartTime": self.process_start_time,
                "processEndTime": self.process_end_time,
            },
        }

    def has_errors(self) -> bool:
        return self.summary.error_count > 0


def summarize(issues: Iterable[ProcessingIssue]) -> IssueSummary:
    issues = list(issues)
    severities = Counter(i.severity for i in issues)
    return IssueSummary(
        total_issues=len(issues),
        error_count=severities[IssueSeverity.ERROR],
        warning_count=severities[IssueSeverity.WARNING],
        info_count=severities[IssueSeverity.INFO],
        files_affected=len({i.file_path for i in issues if i.file_path}),
        category_counts=dict(Counter(i.category.value for i in issues)),
        module_counts=dict(Counter(i.module.value for i in issues)),
    )


class IssueCollector:
    """Append-only, thread-safe store of `ProcessingIssue` records."""

    def __init__(self) -> None:
        self._issues: list[ProcessingIssue] = []
        self._lock = threading.Lock()
        self._start_time = _now()

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)

    @property
    def issues(self) -> list[ProcessingIssue]:
        with self._lock:
            return list(self._issues)

    def add_issue(
        self,
        severity: IssueSeverity,
        category: IssueCategory,
        module: IssueModule,
        message: str,
        file_path: str | None = None,
        **context: Any,
    ) -> ProcessingIssue:
        with self._lock:
            issue = ProcessingIssue(
                id=f"{category.value}-{len(self._issues) + 1}",
                timestamp=_now(),
                severity=severity,
                category=category,
                module=module,
                message=message,
                file_path=file_path,
                context={k: v for k, v in context.items() if v is not None},
            )
            self._issues.append(issue)
        where = f" ({file_path})" if file_path else ""
        logger.log(_LOG_LEVELS[severity], f"[{category.value}] {message}{where}")
        return issue

    def extend(self, issues: Iterable[ProcessingIssue]) -> None:
        """Carry over issues recorded elsewhere (e.g. during plugin start-up)."""
        with self._lock:
            self._issues.extend(issues)

    def add_broken_link(
        self,
        file_path: str,
        link_target: str,
        link_text: str | None = None,
        suggestions: list[str] | None = None,
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.WARNING,
            IssueCategory.BROKEN_LINK,
            IssueModule.LINK_RESOLVER,
            f'Broken link: "{link_target}"',
            file_path,
            link_target=link_target,
            link_text=link_text,
            suggestions=suggestions or None,
        )

    def add_missing_media(
        self, file_path: str, media_path: str, referenced_from: str = "content"
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.WARNING,
            IssueCategory.MISSING_MEDIA,
            IssueModule.IMAGE_PROCESSOR,
            f'Media not found: "{media_path}"',
            file_path,
            media_path=media_path,
            referenced_from=referenced_from,
        )

    def add_media_processing_error(
        self, file_path: str, operation: str, error: str
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.ERROR,
            IssueCategory.MEDIA_PROCESSING_ERROR,
            IssueModule.IMAGE_PROCESSOR,
            f"Media {operation} failed: {error}",
            file_path,
            operation=operation,
            error=error,
        )

    def add_slug_conflict(
        self,
        file_path: str,
        original_slug: str,
        final_slug: str,
        conflicting_files: list[str],
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.INFO,
            IssueCategory.SLUG_CONFLICT,
            IssueModule.SLUG_GENERATOR,
            f'Slug "{original_slug}" already taken, using "{final_slug}"',
            file_path,
            original_slug=original_slug,
            final_slug=final_slug,
            conflicting_files=conflicting_files,
        )

    def add_embedding_error(
        self,
        error: str,
        module: IssueModule = IssueModule.TEXT_EMBEDDINGS,
        file_path: str | None = None,
        operation: str = "embed",
        item_count: int | None = None,
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.ERROR,
            IssueCategory.EMBEDDING_ERROR,
            module,
            f"Embedding {operation} failed: {error}",
            file_path,
            operation=operation,
            error=error,
            item_count=item_count,
        )

    def add_plugin_error(
        self,
        plugin: str,
        operation: str,
        error: str,
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> ProcessingIssue:
        return self.add_issue(
            severity,
            IssueCategory.PLUGIN_ERROR,
            IssueModule.PLUGIN_MANAGER,
            f"Plugin '{plugin}' {operation} failed: {error}",
            plugin=plugin,
            operation=operation,
            error=error,
        )

    def add_parse_error(self, file_path: str, error: str) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.ERROR,
            IssueCategory.PARSE_ERROR,
            IssueModule.MARKDOWN_PARSER,
            f"Could not parse document: {error}",
            file_path,
            error=error,
        )

    def add_file_access_error(
        self, file_path: str, operation: str, error: str
    ) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.ERROR,
            IssueCategory.FILE_ACCESS,
            IssueModule.FILE_SYSTEM,
            f"Could not {operation} file: {error}",
            file_path,
            operation=operation,
            error=error,
        )

    def add_database_error(self, operation: str, error: str) -> ProcessingIssue:
        return self.add_issue(
            IssueSeverity.ERROR,
            IssueCategory.DATABASE_ERROR,
            IssueModule.DATABASE,
            f"Database {operation} failed: {error}",
            operation=operation,
            error=error,
        )

    def filter_issues(
        self,
        severity: IssueSeverity | None = None,
        category: IssueCategory | None = None,
        module: IssueModule | None = None,
    ) -> list[ProcessingIssue]:
        return [
            i
            for i in self.issues
            if (severity is None or i.severity == severity)
            and (category is None or i.category == category)
            and (module is None or i.module == module)
        ]

    def summary(self) -> IssueSummary:
        return summarize(self.issues)

    def has_errors(self) -> bool:
        return any(i.severity == IssueSeverity.ERROR for i in self.issues)

    def generate_report(self) -> IssueReport:
        issues = tuple(self.issues)
        return IssueReport(
            issues=issues,
            summary=summarize(issues),
            process_start_time=self._start_time,
            process_end_time=_now(),
        )

    def summary_string(self) -> str:
        s = self.summary()
        if s.total_issues == 0:
            return "No issues found"
        parts = []
        if s.error_count:
            parts.append(f"{s.error_count} error{'s' if s.error_count != 1 else ''}")
        if s.warning_count:
            parts.append(f"{s.warning_count} warning{'s' if s.warning_count != 1 else ''}")
        if s.info_count:
            parts.append(f"{s.info_count} info")
        return f"Found {', '.join(parts)} in {s.files_affected} files"

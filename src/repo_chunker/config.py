"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

CONFIG_FILE_NAME = "repo_chunker.toml"

DEFAULT_MAX_FILE_BYTES = 2 * 1024 * 1024
MAX_FILE_BYTES_CAP = 64 * 1024 * 1024
DEFAULT_MAX_DEPTH = 100
DEFAULT_MAX_SYMLINK_DEPTH = 10

# 1 KiB under the 10 KiB transport limit of the embedding service.
DEFAULT_MAX_CHUNK_BYTES = 9 * 1024
DEFAULT_LINES_PER_CHUNK = 15
DEFAULT_PARSE_RETRY_LINES = 100

DEFAULT_MAX_WORKERS = 1
DEFAULT_BATCH_SIZE = 100
DEFAULT_TASK_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WORKER_FAILURES = 10
DEFAULT_MEMORY_THRESHOLD = 0.7

DEFAULT_IGNORE_GLOBS = ("**/.git/**", "**/__pycache__/**", "**/.venv/**")
DEFAULT_IGNORED_DIRECTORIES = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    "__pycache__",
    ".pytest_cache",
    ".tox",
    ".venv",
    "venv",
    ".idea",
    ".vscode",
    ".repo_chunker",
)
DEFAULT_LANGUAGE_MAPPING: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".kt": "kotlin",
    ".swift": "swift",
    ".sh": "shell",
    ".sql": "sql",
}
DEFAULT_STRUCTURAL_LANGUAGES = ("python", "javascript", "typescript")


class ConfigurationError(ValueError):
    """Raised when configuration is missing or invalid."""


@dataclass(slots=True, frozen=True)
class ScanConfig:
    """Traversal and file selection settings."""

    include_extensions: tuple[str, ...] = ()
    ignore_globs: tuple[str, ...] = DEFAULT_IGNORE_GLOBS
    ignored_directories: tuple[str, ...] = DEFAULT_IGNORED_DIRECTORIES
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_depth: int = DEFAULT_MAX_DEPTH
    follow_symlinks: bool = True
    max_symlink_depth: int = DEFAULT_MAX_SYMLINK_DEPTH
    value_filter_enabled: bool = True
    process_binary_files: bool = True
    binary_placeholder: bool = True


@dataclass(slots=True, frozen=True)
class ChunkingConfig:
    """Chunk size limits and language routing."""

    max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES
    lines_per_chunk: int = DEFAULT_LINES_PER_CHUNK
    parse_retry_lines: int = DEFAULT_PARSE_RETRY_LINES
    language_mapping: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_LANGUAGE_MAPPING)
    )
    structural_languages: tuple[str, ...] = DEFAULT_STRUCTURAL_LANGUAGES

    def language_for(self, path: str) -> str:
        """Return the mapped language for a path, or 'unknown'."""
        suffix = Path(path).suffix.lower()
        return self.language_mapping.get(suffix, "unknown")


@dataclass(slots=True, frozen=True)
class DispatchConfig:
    """Concurrency and fallback settings for chunk extraction."""

    concurrent: bool = False
    max_workers: int = DEFAULT_MAX_WORKERS
    batch_size: int = DEFAULT_BATCH_SIZE
    task_timeout_seconds: float = DEFAULT_TASK_TIMEOUT_SECONDS
    max_worker_failures: int = DEFAULT_MAX_WORKER_FAILURES
    memory_threshold: float = DEFAULT_MEMORY_THRESHOLD
    batch_pause_seconds: float = 0.0


@dataclass(slots=True, frozen=True)
class ChunkerConfig:
    """Fully merged configuration for one workspace."""

    workspace_root: Path
    data_dir: Path
    scan: ScanConfig = field(default_factory=ScanConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot."""
        return {
            "workspace_root": str(self.workspace_root),
            "data_dir": str(self.data_dir),
            "scan": {
                "include_extensions": list(self.scan.include_extensions),
                "ignore_globs": list(self.scan.ignore_globs),
                "ignored_directories": list(self.scan.ignored_directories),
                "max_file_bytes": self.scan.max_file_bytes,
                "max_depth": self.scan.max_depth,
                "follow_symlinks": self.scan.follow_symlinks,
                "max_symlink_depth": self.scan.max_symlink_depth,
                "value_filter_enabled": self.scan.value_filter_enabled,
                "process_binary_files": self.scan.process_binary_files,
                "binary_placeholder": self.scan.binary_placeholder,
            },
            "chunking": {
                "max_chunk_bytes": self.chunking.max_chunk_bytes,
                "lines_per_chunk": self.chunking.lines_per_chunk,
                "parse_retry_lines": self.chunking.parse_retry_lines,
                "language_mapping": dict(sorted(self.chunking.language_mapping.items())),
                "structural_languages": list(self.chunking.structural_languages),
            },
            "dispatch": {
                "concurrent": self.dispatch.concurrent,
                "max_workers": self.dispatch.max_workers,
                "batch_size": self.dispatch.batch_size,
                "task_timeout_seconds": self.dispatch.task_timeout_seconds,
                "max_worker_failures": self.dispatch.max_worker_failures,
                "memory_threshold": self.dispatch.memory_threshold,
                "batch_pause_seconds": self.dispatch.batch_pause_seconds,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    include_extensions: tuple[str, ...] | None = None
    max_file_bytes: int | None = None
    concurrent: bool | None = None
    max_workers: int | None = None


def default_config(workspace_root: Path) -> ChunkerConfig:
    """Build default config for a given workspace root."""
    resolved_root = workspace_root.resolve()
    return ChunkerConfig(
        workspace_root=resolved_root,
        data_dir=resolved_root / ".repo_chunker",
    )


def load_repo_config_file(workspace_root: Path) -> dict[str, object]:
    """Load optional repo_chunker.toml from the workspace root."""
    config_path = workspace_root / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    try:
        with config_path.open("rb") as handle:
            payload = tomllib.load(handle)
    except tomllib.TOMLDecodeError as error:
        raise ConfigurationError(f"{CONFIG_FILE_NAME} is not valid TOML: {error}") from error
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ConfigurationError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigurationError(f"Config field '{name}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigurationError(f"Config field '{name}' must contain only strings.")
        output.append(item)
    return tuple(output)


def normalize_extensions(extensions: tuple[str, ...]) -> tuple[str, ...]:
    """Lower-case extensions and ensure a leading dot."""
    normalized: list[str] = []
    for extension in extensions:
        value = extension.strip().lower()
        if not value:
            continue
        if not value.startswith("."):
            value = f".{value}"
        if value not in normalized:
            normalized.append(value)
    return tuple(normalized)


def merge_config(
    base: ChunkerConfig, repo_payload: dict[str, object], overrides: CliOverrides
) -> ChunkerConfig:
    """Merge defaults, repo config, then CLI/startup overrides."""
    scan_payload = _get_table(repo_payload, "scan")
    chunking_payload = _get_table(repo_payload, "chunking")
    dispatch_payload = _get_table(repo_payload, "dispatch")

    scan = base.scan
    if "include_extensions" in scan_payload:
        scan = replace(
            scan,
            include_extensions=normalize_extensions(
                _tuple_of_strings(scan_payload["include_extensions"], "scan.include_extensions")
            ),
        )
    if "ignore_globs" in scan_payload:
        scan = replace(
            scan, ignore_globs=_tuple_of_strings(scan_payload["ignore_globs"], "scan.ignore_globs")
        )
    if "ignored_directories" in scan_payload:
        scan = replace(
            scan,
            ignored_directories=_tuple_of_strings(
                scan_payload["ignored_directories"], "scan.ignored_directories"
            ),
        )
    scan = replace(
        scan,
        max_file_bytes=_optional_positive_int_with_cap(
            scan_payload.get("max_file_bytes"),
            "scan.max_file_bytes",
            scan.max_file_bytes,
            MAX_FILE_BYTES_CAP,
        ),
        max_depth=_optional_positive_int(scan_payload.get("max_depth"), "scan.max_depth", scan.max_depth),
        follow_symlinks=_optional_bool(
            scan_payload.get("follow_symlinks"), "scan.follow_symlinks", scan.follow_symlinks
        ),
        max_symlink_depth=_optional_positive_int(
            scan_payload.get("max_symlink_depth"), "scan.max_symlink_depth", scan.max_symlink_depth
        ),
        value_filter_enabled=_optional_bool(
            scan_payload.get("value_filter_enabled"),
            "scan.value_filter_enabled",
            scan.value_filter_enabled,
        ),
        process_binary_files=_optional_bool(
            scan_payload.get("process_binary_files"),
            "scan.process_binary_files",
            scan.process_binary_files,
        ),
        binary_placeholder=_optional_bool(
            scan_payload.get("binary_placeholder"),
            "scan.binary_placeholder",
            scan.binary_placeholder,
        ),
    )

    chunking = base.chunking
    language_mapping = chunking.language_mapping
    if "language_mapping" in chunking_payload:
        language_mapping = _language_mapping(chunking_payload["language_mapping"])
    structural_languages = chunking.structural_languages
    if "structural_languages" in chunking_payload:
        structural_languages = _tuple_of_strings(
            chunking_payload["structural_languages"], "chunking.structural_languages"
        )
    chunking = ChunkingConfig(
        max_chunk_bytes=_optional_positive_int(
            chunking_payload.get("max_chunk_bytes"),
            "chunking.max_chunk_bytes",
            chunking.max_chunk_bytes,
        ),
        lines_per_chunk=_optional_positive_int(
            chunking_payload.get("lines_per_chunk"),
            "chunking.lines_per_chunk",
            chunking.lines_per_chunk,
        ),
        parse_retry_lines=_optional_positive_int(
            chunking_payload.get("parse_retry_lines"),
            "chunking.parse_retry_lines",
            chunking.parse_retry_lines,
        ),
        language_mapping=language_mapping,
        structural_languages=structural_languages,
    )

    dispatch = base.dispatch
    dispatch = DispatchConfig(
        concurrent=_optional_bool(
            dispatch_payload.get("concurrent"), "dispatch.concurrent", dispatch.concurrent
        ),
        max_workers=_optional_positive_int(
            dispatch_payload.get("max_workers"), "dispatch.max_workers", dispatch.max_workers
        ),
        batch_size=_optional_positive_int(
            dispatch_payload.get("batch_size"), "dispatch.batch_size", dispatch.batch_size
        ),
        task_timeout_seconds=_optional_positive_float(
            dispatch_payload.get("task_timeout_seconds"),
            "dispatch.task_timeout_seconds",
            dispatch.task_timeout_seconds,
        ),
        max_worker_failures=_optional_positive_int(
            dispatch_payload.get("max_worker_failures"),
            "dispatch.max_worker_failures",
            dispatch.max_worker_failures,
        ),
        memory_threshold=_optional_ratio(
            dispatch_payload.get("memory_threshold"),
            "dispatch.memory_threshold",
            dispatch.memory_threshold,
        ),
        batch_pause_seconds=_optional_non_negative_float(
            dispatch_payload.get("batch_pause_seconds"),
            "dispatch.batch_pause_seconds",
            dispatch.batch_pause_seconds,
        ),
    )

    merged = ChunkerConfig(
        workspace_root=base.workspace_root,
        data_dir=base.data_dir,
        scan=scan,
        chunking=chunking,
        dispatch=dispatch,
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: ChunkerConfig, overrides: CliOverrides) -> ChunkerConfig:
    """Apply startup overrides at highest precedence."""
    scan = config.scan
    if overrides.include_extensions is not None:
        scan = replace(scan, include_extensions=normalize_extensions(overrides.include_extensions))
    scan = replace(
        scan,
        max_file_bytes=_optional_positive_int_with_cap(
            overrides.max_file_bytes,
            "overrides.max_file_bytes",
            scan.max_file_bytes,
            MAX_FILE_BYTES_CAP,
        ),
    )
    dispatch = replace(
        config.dispatch,
        concurrent=(
            overrides.concurrent if overrides.concurrent is not None else config.dispatch.concurrent
        ),
        max_workers=_optional_positive_int(
            overrides.max_workers, "overrides.max_workers", config.dispatch.max_workers
        ),
    )
    data_dir = overrides.data_dir or config.data_dir
    return ChunkerConfig(
        workspace_root=config.workspace_root,
        data_dir=data_dir.resolve(),
        scan=scan,
        chunking=config.chunking,
        dispatch=dispatch,
    )


def load_effective_config(
    workspace_root: Path, overrides: CliOverrides | None = None
) -> ChunkerConfig:
    """Load effective config using merge order defaults -> repo config -> overrides."""
    resolved_root = workspace_root.resolve()
    base = default_config(resolved_root)
    payload = load_repo_config_file(resolved_root)
    return merge_config(base, payload, overrides or CliOverrides())


def require_include_extensions(scan: ScanConfig) -> frozenset[str]:
    """Return the extension allow-list, failing when it is absent."""
    extensions = normalize_extensions(scan.include_extensions)
    if not extensions:
        raise ConfigurationError(
            "Config field 'scan.include_extensions' is missing or empty; "
            "an explicit extension allow-list is required."
        )
    return frozenset(extensions)


def _language_mapping(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        raise ConfigurationError("Config field 'chunking.language_mapping' must be a table.")
    mapping: dict[str, str] = {}
    for key, language in value.items():
        if not isinstance(language, str):
            raise ConfigurationError(
                "Config field 'chunking.language_mapping' must map extensions to strings."
            )
        for extension in normalize_extensions((str(key),)):
            mapping[extension] = language.strip().lower()
    return mapping


def _optional_bool(value: object, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"Config field '{name}' must be a boolean.")
    return value


def _optional_positive_int(value: object, name: str, default: int) -> int:
    return _optional_positive_int_with_cap(value, name, default, cap=None)


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ConfigurationError(f"Config field '{name}' must be <= {cap}.")
    return value


def _optional_positive_float(value: object, name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f"Config field '{name}' must be a positive number.")
    return float(value)


def _optional_non_negative_float(value: object, name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError(f"Config field '{name}' must be a non-negative number.")
    return float(value)


def _optional_ratio(value: object, name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 < value <= 1:
        raise ConfigurationError(f"Config field '{name}' must be a number in (0, 1].")
    return float(value)

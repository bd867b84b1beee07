"""Backend definitions: operation registries and dispatch policies."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class BackendConfig(BaseModel):
    """Configuration describing one backend Switchyard can dispatch operations to."""

    id: str = Field(..., description="Unique identifier used when requesting operations.")
    name: str = Field(default="", description="Display name for the backend.")
    kind: Literal["cli", "mcp"] = Field(
        default="mcp",
        description="'cli' for the assistant CLI, 'mcp' for a remote MCP tool server.",
    )
    description: str = Field(default="", description="Short human-friendly summary.")
    endpoint: str | None = Field(
        default=None,
        description="MCP server URL or launch script; unused for the CLI backend.",
    )
    enabled: bool = Field(default=True, description="Disabled backends are not registered.")
    timeout: float | None = Field(
        default=None,
        description="Deadline for one operation in seconds; falls back to the global default.",
    )
    cache_ttl: float | None = Field(
        default=None,
        description="Cache lifetime in seconds; falls back to the global default.",
    )
    cacheable: bool = Field(default=True, description="Whether results may be cached at all.")
    non_cacheable_operations: list[str] = Field(
        default_factory=list,
        description="Operation types that always bypass the cache.",
    )
    operations: list[str] = Field(
        ...,
        description="Closed set of operation types this backend accepts.",
    )
    tools: dict[str, str] = Field(
        default_factory=dict,
        description="Operation type to MCP tool name overrides.",
    )
    capabilities: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Backend id must not be empty")
        return normalized

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("Backend timeout must be > 0")
        return value

    @field_validator("cache_ttl")
    @classmethod
    def _validate_ttl(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("Backend cache_ttl must be >= 0")
        return value

    @field_validator("operations", "non_cacheable_operations", "capabilities", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple, set, frozenset)):
            return list(value)
        raise TypeError("Operations and capabilities must be sequences of strings")

    @model_validator(mode="after")
    def _check_registry(self) -> "BackendConfig":
        if not self.operations:
            raise ValueError(f"Backend '{self.id}' must declare at least one operation")
        unknown = set(self.non_cacheable_operations) - set(self.operations)
        if unknown:
            raise ValueError(
                f"Backend '{self.id}' marks unregistered operations non-cacheable: {sorted(unknown)}"
            )
        if not self.name:
            self.name = self.id
        return self

    def is_cacheable(self, operation_type: str) -> bool:
        return self.cacheable and operation_type not in self.non_cacheable_operations

    def tool_name(self, operation_type: str) -> str:
        return self.tools.get(operation_type, operation_type.replace("-", "_"))


CLI_BACKEND_ID = "claude"

DEFAULT_BACKENDS: tuple[BackendConfig, ...] = (
    BackendConfig(
        id=CLI_BACKEND_ID,
        name="Assistant CLI",
        kind="cli",
        description="The local coding-assistant command-line program.",
        operations=[
            "chat",
            "edit-file",
            "create-file",
            "generate-code",
            "analyze-project",
            "run-tests",
            "execute-shell",
        ],
        non_cacheable_operations=["edit-file", "create-file", "run-tests", "execute-shell"],
        capabilities=["chat", "edit", "create", "generate", "analyze", "test", "exec"],
    ),
    BackendConfig(
        id="context7",
        name="Context7",
        description="Documentation and library context provider.",
        operations=["resolve-library-id", "get-library-docs"],
        capabilities=["library_documentation", "api_reference", "code_examples"],
    ),
    BackendConfig(
        id="github",
        name="GitHub",
        description="Repository, issue and pull request access.",
        operations=[
            "search-repositories",
            "get-file-contents",
            "create-issue",
            "create-pull-request",
            "search-code",
        ],
        non_cacheable_operations=["create-issue", "create-pull-request"],
        capabilities=["repository_access", "issue_management", "pull_requests"],
    ),
    BackendConfig(
        id="firecrawl",
        name="Firecrawl",
        description="Web scraping and content extraction.",
        operations=["scrape", "crawl", "search", "extract", "map"],
        timeout=60.0,
        cache_ttl=600.0,
        capabilities=["web_scraping", "content_extraction", "batch_crawling", "url_mapping"],
    ),
    BackendConfig(
        id="puppeteer",
        name="Puppeteer",
        description="Browser automation.",
        operations=["navigate", "screenshot", "click", "fill", "evaluate"],
        timeout=45.0,
        cacheable=False,
        capabilities=["web_navigation", "page_interaction", "screenshot_capture", "form_automation"],
    ),
    BackendConfig(
        id="ide",
        name="IDE",
        description="Live diagnostics and code execution in the editor.",
        operations=["get-diagnostics", "execute-code"],
        timeout=15.0,
        cacheable=False,
        capabilities=["diagnostics", "code_execution"],
    ),
)


__all__ = ["BackendConfig", "CLI_BACKEND_ID", "DEFAULT_BACKENDS"]

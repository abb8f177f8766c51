"""Pydantic models for crawl requests and their results."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CrawlOptions(BaseModel):
    """Options sent with a crawl request."""

    spider_options: Dict[str, Any] = Field(default_factory=dict)
    page_options: Dict[str, Any] = Field(default_factory=dict)
    plugin_options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class CrawlRequest(BaseModel):
    """Snapshot of a server-side crawl job.

    Instances are frozen: the service owns the job, the client only holds
    what it was told at creation or retrieval time.
    """

    uuid: str
    url: Union[str, List[str], None] = None
    status: str = ""
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    options: CrawlOptions = Field(default_factory=CrawlOptions)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(extra="allow", frozen=True)


class CrawlRequestList(BaseModel):
    """One page of crawl requests."""

    count: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[CrawlRequest] = Field(default_factory=list)


class CrawlResult(BaseModel):
    """A single page result produced by a crawl request."""

    uuid: str
    url: str = ""
    status: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class CrawlResultList(BaseModel):
    """One page of crawl results."""

    count: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[CrawlResult] = Field(default_factory=list)


class CreateCrawlRequestInput(BaseModel):
    """Body of a create call.

    ``url`` is left untyped here; target validation happens before the model
    is built so that errors can name the offending list index.
    """

    url: Any = None
    options: CrawlOptions = Field(default_factory=CrawlOptions)

"""Shared fakes for the bridge tests."""

from typing import Any

import pytest

from ticketbridge.attachments.models import FileBuffer


class FakeKeyValueStore:
    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl_seconds


class FakeThread:
    """Records what the bridge posts into a Discord thread."""

    def __init__(self, thread_id: str = "thread-1", fail_with_files: bool = False) -> None:
        self._id = thread_id
        self.fail_with_files = fail_with_files
        self.sent: list[tuple[str | None, list[FileBuffer]]] = []
        self.archived = False
        self.archive_error: Exception | None = None

    @property
    def id(self) -> str:
        return self._id

    async def send(self, content: str | None, files: list[FileBuffer]) -> None:
        if files and self.fail_with_files:
            raise RuntimeError("upload rejected by Discord")
        self.sent.append((content, list(files)))

    async def archive(self) -> None:
        if self.archive_error is not None:
            raise self.archive_error
        self.archived = True


class FakeGateway:
    def __init__(self, *threads: FakeThread) -> None:
        self.threads = {t.id: t for t in threads}

    async def get_thread(self, thread_id: str) -> FakeThread | None:
        return self.threads.get(thread_id)


def make_envelope(**overrides: Any) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "platform": "unthread",
        "targetPlatform": "discord",
        "sourcePlatform": "dashboard",
        "type": "message_created",
        "timestamp": "2025-01-15T10:30:00Z",
        "data": {"conversationId": "conv-1", "text": "hello", "userId": "user-1"},
    }
    envelope.update(overrides)
    return envelope


def make_file(name: str = "shot.png", mimetype: str = "image/png", size: int = 2048, **extra: Any) -> dict[str, Any]:
    raw = {"id": f"id-{name}", "name": name, "mimetype": mimetype, "size": size,
           "url": f"https://files.example.com/{name}"}
    raw.update(extra)
    return raw


def with_files(files: list[dict[str, Any]], **overrides: Any) -> dict[str, Any]:
    """Envelope carrying ``files`` in data plus matching attachment metadata."""
    envelope = make_envelope(**overrides)
    envelope["data"] = {**envelope["data"], "files": files}
    envelope["attachments"] = {
        "hasFiles": bool(files),
        "fileCount": len(files),
        "totalSize": sum(f["size"] for f in files),
        "types": sorted({f["mimetype"] for f in files}),
        "names": [f["name"] for f in files],
    }
    return envelope


@pytest.fixture
def kv():
    return FakeKeyValueStore()


@pytest.fixture
def thread():
    return FakeThread()

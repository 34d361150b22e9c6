"""Pytest fixtures for threadscribe tests."""

import asyncio
import copy
import json
from typing import Any

import pytest

from threadscribe.config import Settings, get_settings
from threadscribe.extraction.schemas import Attachment, ExtractionRecord
from threadscribe.ledger import ProcessedLedger
from threadscribe.processor import ThreadProcessor
from threadscribe.utils.errors import (
    ExtractionError,
    MessageTooLongError,
    SlackImageDownloadError,
    SlackMessengerError,
)

TEST_ENV = {
    "SLACK_BOT_TOKEN": "xoxb-test",
    "SLACK_SIGNING_SECRET": "test-signing-secret",
    "STORE_TOKEN": "test-store-token",
}


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    """Known credentials and a fresh settings cache for every test."""
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, **{k.lower(): v for k, v in TEST_ENV.items()})


class FakeStore:
    """In-memory stand-in for BlobStore."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.reads = 0
        self.writes = 0
        self.claims: set[str] = set()

    async def get_json(self, key: str) -> Any | None:
        self.reads += 1
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None

    async def update_json(self, key, mutate, ttl=None):
        self.writes += 1
        raw = self.data.get(key)
        current = json.loads(raw) if raw is not None else None
        new_value = mutate(copy.deepcopy(current))
        self.data[key] = json.dumps(new_value)
        return new_value

    async def claim(self, key: str, ttl: int) -> bool:
        if key in self.claims:
            return False
        self.claims.add(key)
        return True

    async def disconnect(self) -> None:
        pass


class FakeMessenger:
    """Records every post and update; can enforce a length ceiling."""

    def __init__(self, messages: list[dict] | None = None, max_length: int | None = None):
        self.messages = messages or []
        self.max_length = max_length
        self.posts: list[tuple[str, str, str]] = []
        self.updates: list[tuple[str, str, str]] = []
        self.fail_post: Exception | None = None
        self.fail_fetch: Exception | None = None
        self.fail_update: Exception | None = None
        self.fail_update_prefix: str | None = None
        self._next_ts = 1

    async def get_thread_messages(self, channel: str, thread_ts: str) -> list[dict]:
        if self.fail_fetch:
            raise self.fail_fetch
        return self.messages

    async def post_message(self, channel: str, thread_ts: str, text: str) -> str:
        if self.fail_post:
            raise self.fail_post
        self._check_length(text)
        ts = f"9999.{self._next_ts:06d}"
        self._next_ts += 1
        self.posts.append((channel, thread_ts, text))
        return ts

    async def update_message(self, channel: str, message_ts: str, text: str) -> None:
        if self.fail_update:
            raise self.fail_update
        if self.fail_update_prefix and text.startswith(self.fail_update_prefix):
            raise SlackMessengerError("Slack chat.update failed: ratelimited")
        self._check_length(text)
        self.updates.append((channel, message_ts, text))

    def _check_length(self, text: str) -> None:
        if self.max_length is not None and len(text) > self.max_length:
            raise MessageTooLongError("Slack rejected message: msg_too_long")

    @property
    def status_texts(self) -> list[str]:
        return [text for _, _, text in self.updates]

    @property
    def final_text(self) -> str:
        return self.updates[-1][2]


class FakeDownloader:
    """Async context manager returning canned bytes, failing for chosen ids."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.fail_ids = fail_ids or set()
        self.downloaded: list[str] = []

    async def __aenter__(self) -> "FakeDownloader":
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def download_image(self, attachment: Attachment) -> bytes:
        if attachment.id in self.fail_ids:
            raise SlackImageDownloadError("HTTP 404 downloading image")
        self.downloaded.append(attachment.id)
        return f"bytes-{attachment.id}".encode()


class FakeExtractor:
    """Returns a plain English record per image and counts calls."""

    def __init__(self, text_length: int = 0):
        self.calls: list[str] = []
        self.text_length = text_length
        self.fail_ids: set[str] = set()
        self.delays: dict[str, float] = {}

    async def extract(self, image_bytes: bytes, attachment: Attachment) -> ExtractionRecord:
        self.calls.append(attachment.id)
        if attachment.id in self.delays:
            await asyncio.sleep(self.delays[attachment.id])
        if attachment.id in self.fail_ids:
            raise ExtractionError("Extraction model call failed: 401 invalid_api_key")
        text = f"text of {attachment.id}"
        if self.text_length:
            text = (text + " ") * (self.text_length // (len(text) + 1) + 1)
            text = text[: self.text_length]
        return ExtractionRecord(
            item_id=attachment.id,
            display_name=attachment.display_name,
            extracted_text=text,
            detected_language="English",
        )


def make_thread(image_count: int, extra_files: list[dict] | None = None) -> list[dict]:
    """Build Slack thread messages with one image per reply after the root."""
    messages = [{"ts": "1700000000.000100", "user": "U001", "text": "root", "files": extra_files or []}]
    for index in range(image_count):
        messages.append(
            {
                "ts": f"1700000000.{index + 200:06d}",
                "user": "U002",
                "files": [
                    {
                        "id": f"F{index:03d}",
                        "name": f"image_{index}.png",
                        "mimetype": "image/png",
                        "url_private_download": f"https://files.slack.com/F{index:03d}/download",
                    }
                ],
            }
        )
    return messages


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def build_processor(settings, fake_store, fake_extractor, fake_downloader):
    """Factory wiring a ThreadProcessor to fakes around a given thread."""

    def _build(messenger: FakeMessenger, **overrides) -> ThreadProcessor:
        job_settings = settings.model_copy(update=overrides) if overrides else settings
        return ThreadProcessor(
            messenger=messenger,
            ledger=ProcessedLedger(fake_store),
            extractor=fake_extractor,
            downloader_factory=lambda: fake_downloader,
            settings=job_settings,
        )

    return _build

import asyncio
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cryptofm.errors import SynthesisError  # noqa: E402
from cryptofm.repository import SegmentRepository  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def repository(tmp_path):
    repo = SegmentRepository(tmp_path / "queue.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


class FakeSpeechProvider:
    """Records every chunk it is asked to speak and returns tagged bytes."""

    def __init__(self, *, fail_on_call: int | None = None, gate: asyncio.Event | None = None):
        self.calls: list[str] = []
        self.fail_on_call = fail_on_call
        self.gate = gate
        self.closed = False

    async def synthesize(self, text: str) -> bytes:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise SynthesisError("quota exceeded", status_code=429)
        return f"<audio {len(self.calls)}>".encode()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> FakeSpeechProvider:
    return FakeSpeechProvider()


@pytest.fixture
def make_provider():
    return FakeSpeechProvider

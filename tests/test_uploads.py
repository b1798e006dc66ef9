import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError

from app.api.v1.messages.service import commit_with_attachment
from app.core.uploads import discard_upload, save_upload


class _BrokenStream(io.BytesIO):
    """Yields one chunk, then fails like a dropped connection."""

    def __init__(self) -> None:
        super().__init__(b"x" * 10)
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls > 1:
            raise OSError("connection reset")
        return super().read(size)


class _FailingSession:
    def __init__(self) -> None:
        self.rolled_back = False

    async def commit(self):
        raise IntegrityError("INSERT INTO messages", {}, Exception("constraint failed"))

    async def rollback(self):
        self.rolled_back = True


@pytest.mark.asyncio
async def test_save_upload_removes_partial_file(upload_dirs) -> None:
    upload = UploadFile(file=_BrokenStream(), filename="notes.txt")

    with pytest.raises(OSError):
        await save_upload(upload)

    assert list((upload_dirs / "uploads").iterdir()) == []


@pytest.mark.asyncio
async def test_failed_commit_discards_attachment(upload_dirs) -> None:
    file_path, file_name = await save_upload(UploadFile(file=io.BytesIO(b"hello"), filename="notes.txt"))
    assert Path(file_path).read_bytes() == b"hello"
    assert file_name == "notes.txt"

    session = _FailingSession()
    with pytest.raises(IntegrityError):
        await commit_with_attachment(session, file_path)

    assert session.rolled_back
    assert not Path(file_path).exists()


def test_discard_upload_tolerates_missing_files(upload_dirs) -> None:
    discard_upload(None)
    discard_upload(str(upload_dirs / "uploads" / "gone.pdf"))

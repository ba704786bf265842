import pytest

from imageworker.core.config import Settings
from imageworker.core.exceptions import StorageError
from imageworker.core.storage import LocalStorage, StorageFactory, guess_content_type


@pytest.mark.asyncio
async def test_local_storage_round_trip(local_storage):
    # Arrange
    key = "offers/42/thumb.jpg"

    # Act
    stored = await local_storage.upload(b"jpeg bytes", key)

    # Assert
    assert stored == key
    assert await local_storage.exists(key)
    assert await local_storage.get_url(key) == "https://cdn.example.com/offers/42/thumb.jpg"


@pytest.mark.asyncio
async def test_local_upload_overwrites(local_storage, tmp_path):
    await local_storage.upload(b"first", "a.jpg")
    await local_storage.upload(b"second", "a.jpg")

    assert (tmp_path / "storage" / "a.jpg").read_bytes() == b"second"


@pytest.mark.asyncio
async def test_local_delete_reports_whether_anything_was_removed(local_storage):
    await local_storage.upload(b"data", "a.jpg")

    assert await local_storage.delete("a.jpg") is True
    assert await local_storage.delete("a.jpg") is False
    assert not await local_storage.exists("a.jpg")


@pytest.mark.asyncio
async def test_local_url_of_missing_file_raises(local_storage):
    with pytest.raises(FileNotFoundError):
        await local_storage.get_url("missing.jpg")


@pytest.mark.asyncio
async def test_keys_cannot_escape_the_storage_root(local_storage):
    with pytest.raises(StorageError):
        await local_storage.upload(b"data", "../outside.jpg")


def test_factory_returns_a_single_local_instance(tmp_path):
    settings = Settings(STORAGE_BACKEND="local", LOCAL_STORAGE_PATH=str(tmp_path / "s"))

    first = StorageFactory.get_storage(settings)

    assert isinstance(first, LocalStorage)
    assert StorageFactory.get_storage(settings) is first


def test_factory_rejects_unknown_backend():
    with pytest.raises(StorageError):
        StorageFactory.get_storage(Settings(STORAGE_BACKEND="ftp"))


def test_factory_requires_azure_connection_string():
    with pytest.raises(StorageError):
        StorageFactory.get_storage(Settings(STORAGE_BACKEND="azure", AZURE_STORAGE_CONNECTION_STRING=None))


@pytest.mark.parametrize("name,expected", [
    ("a.jpg", "image/jpeg"),
    ("a.png", "image/png"),
    ("a.unknownext", "application/octet-stream"),
])
def test_guess_content_type(name, expected):
    assert guess_content_type(name) == expected

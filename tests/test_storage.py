import pytest

from photobatch.services.storage import LocalStorage


async def test_put_read_and_delete(tmp_path):
    storage = LocalStorage(base_path=tmp_path, public_base_url="https://cdn.test/files/")

    url = await storage.put_object("generations/u/g/0_a.jpg", b"data")

    assert url == "https://cdn.test/files/generations/u/g/0_a.jpg"
    assert await storage.read_object("generations/u/g/0_a.jpg") == b"data"
    assert await storage.delete_object("generations/u/g/0_a.jpg")
    assert not await storage.delete_object("generations/u/g/0_a.jpg")


async def test_delete_prefix_counts_files(tmp_path):
    storage = LocalStorage(base_path=tmp_path)
    await storage.put_object("generations/u/g1/0_a.jpg", b"1")
    await storage.put_object("generations/u/g2/1_b.jpg", b"2")
    await storage.put_object("generations/other/g3/0_c.jpg", b"3")

    assert await storage.delete_prefix("generations/u") == 2
    assert await storage.delete_prefix("generations/u") == 0
    assert (tmp_path / "generations/other/g3/0_c.jpg").exists()


async def test_paths_cannot_escape_the_base(tmp_path):
    storage = LocalStorage(base_path=tmp_path / "store")

    with pytest.raises(ValueError):
        await storage.put_object("../outside.jpg", b"x")
    assert not await storage.delete_object("../../etc/passwd")

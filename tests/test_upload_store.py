from upload_store import UploadCleaner, UploadStore


def test_save_names_file_by_time_and_keeps_extension(tmp_path):
    store = UploadStore(tmp_path / "uploads")

    first = store.save("cat.PNG", b"one")
    second = store.save("cat.png", b"two")

    assert first.endswith(".png")
    assert first.split(".")[0].split("-")[0].isdigit()
    assert first != second
    assert (tmp_path / "uploads" / first).read_bytes() == b"one"
    assert (tmp_path / "uploads" / second).read_bytes() == b"two"


def test_save_ignores_directories_in_client_filename(tmp_path):
    store = UploadStore(tmp_path / "uploads")

    name = store.save("../../etc/passwd.gif", b"x")

    assert "/" not in name
    assert (tmp_path / "uploads" / name).exists()


def test_clear_keeps_gitkeep(tmp_path):
    store = UploadStore(tmp_path)
    (tmp_path / ".gitkeep").write_text("")
    (tmp_path / "1.png").write_bytes(b"a")
    (tmp_path / "2.gif").write_bytes(b"b")

    removed = store.clear()

    assert removed == 2
    assert sorted(p.name for p in tmp_path.iterdir()) == [".gitkeep"]


def test_clear_missing_directory(tmp_path):
    assert UploadStore(tmp_path / "missing").clear() == 0


async def test_cleaner_cycle_clears_store(tmp_path):
    store = UploadStore(tmp_path)
    (tmp_path / "1.png").write_bytes(b"a")

    await UploadCleaner(store).run_once()

    assert list(tmp_path.iterdir()) == []

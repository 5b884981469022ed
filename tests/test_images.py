import pytest

from storefront_gateway.services.errors import PartialUploadError
from storefront_gateway.services.images import replace_images, upload_images


def _staged(staging, n, prefix=b"img"):
    return [staging.put_bytes(data=prefix + str(i).encode(), filename=f"p{i}.jpg") for i in range(n)]


@pytest.mark.asyncio
async def test_upload_all_and_clean_scratch_files(catalog, staging):
    pid = catalog.seed_product("a@x.com")
    files = _staged(staging, 3)

    images = await upload_images(catalog, pid, files)

    assert len(images) == 3
    assert all(img.src.startswith("https://") for img in images)
    assert len(catalog.products[pid]["images"]) == 3
    assert not any(f.path.exists() for f in files)


@pytest.mark.asyncio
async def test_no_files_is_a_noop(catalog):
    pid = catalog.seed_product("a@x.com")
    assert await upload_images(catalog, pid, []) == []
    assert catalog.called("upload_image") == []


@pytest.mark.asyncio
async def test_one_failure_fails_group_without_cancelling_siblings(catalog, staging):
    pid = catalog.seed_product("a@x.com")
    files = _staged(staging, 3)
    catalog.fail_upload_payloads.add(b"img0")
    catalog.slow_upload_payloads.add(b"img2")

    with pytest.raises(PartialUploadError) as ei:
        await upload_images(catalog, pid, files)

    err = ei.value
    assert len(err.failures) == 1
    # the slow sibling still finished and stays attached: no rollback
    assert len(err.applied) == 2
    assert len(catalog.products[pid]["images"]) == 2
    assert err.body() == "Something went wrong"
    # every scratch file is gone, failed one included
    assert not any(f.path.exists() for f in files)


@pytest.mark.asyncio
async def test_replace_without_files_leaves_images_alone(catalog):
    pid = catalog.seed_product("a@x.com", images=2)
    before = list(catalog.products[pid]["images"])

    assert await replace_images(catalog, pid, before, []) is None
    assert catalog.products[pid]["images"] == before
    assert catalog.called("delete_image") == []


@pytest.mark.asyncio
async def test_replace_drops_every_old_image_then_uploads(catalog, staging):
    pid = catalog.seed_product("a@x.com", images=3)
    old_ids = {img["id"] for img in catalog.products[pid]["images"]}

    images = await replace_images(catalog, pid, list(catalog.products[pid]["images"]), _staged(staging, 2))

    current = catalog.products[pid]["images"]
    assert len(images) == 2
    assert len(current) == 2
    assert not old_ids & {img["id"] for img in current}

    names = [c[0] for c in catalog.calls]
    assert max(i for i, n in enumerate(names) if n == "delete_image") < min(
        i for i, n in enumerate(names) if n == "upload_image"
    )


@pytest.mark.asyncio
async def test_replace_delete_failure_skips_uploads_and_releases_files(catalog, staging):
    pid = catalog.seed_product("a@x.com", images=2)
    existing = list(catalog.products[pid]["images"])
    catalog.fail_delete_image_ids.add(str(existing[0]["id"]))
    files = _staged(staging, 2)

    with pytest.raises(PartialUploadError) as ei:
        await replace_images(catalog, pid, existing, files)

    assert ei.value.body() == {"errors": "Internal Server Error"}
    assert catalog.called("upload_image") == []
    assert not any(f.path.exists() for f in files)


@pytest.mark.asyncio
async def test_uploads_run_concurrently(catalog, staging, make_gate):
    pid = catalog.seed_product("a@x.com")
    catalog.upload_gate = make_gate(4)

    images = await upload_images(catalog, pid, _staged(staging, 4))

    assert len(images) == 4
    assert catalog.upload_gate.arrived == 4


@pytest.mark.asyncio
async def test_replace_deletes_and_uploads_concurrently(catalog, staging, make_gate):
    pid = catalog.seed_product("a@x.com", images=3)
    catalog.delete_image_gate = make_gate(3)
    catalog.upload_gate = make_gate(2)

    images = await replace_images(catalog, pid, list(catalog.products[pid]["images"]), _staged(staging, 2))

    assert len(images) == 2
    assert catalog.delete_image_gate.arrived == 3
    assert catalog.upload_gate.arrived == 2

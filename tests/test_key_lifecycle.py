import os
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from helpers import T0, public_key_with_id

from key_directory.config import LifecycleConfig
from key_directory.directory import render_hpke_jwks, render_privacypass_directory
from key_directory.exceptions import DirectoryUninitialized, StoreError
from key_directory.models import KeyPurpose, KeyRecord
from key_directory.services.key_lifecycle import KeyLifecycle, freshest, order_by_recency, plan_sweep
from key_directory.services.key_manager import KeyMinter
from key_directory.storage import FilesystemObjectStore, KeyRecordStore
from key_directory.utils import b64e

DAY_MS = 24 * 3600 * 1000


async def put_at(records, clock, when, identifier, purpose=KeyPurpose.SIGNATURE, not_before=True):
    clock.set(when)
    public = public_key_with_id(identifier)
    record = KeyRecord(
        purpose=purpose,
        identifier=identifier,
        public_key=public,
        not_before=int(when.timestamp()) if not_before else None,
        private_key=b"private",
    )
    return await records.put(record)


@pytest.mark.asyncio
async def test_sweep_deletes_only_expired_keys_outside_floor(records, lifecycle, clock):
    await put_at(records, clock, T0 - timedelta(days=30), 1)
    await put_at(records, clock, T0 - timedelta(days=10), 2)
    await put_at(records, clock, T0 - timedelta(days=1), 3)
    clock.set(T0)

    assert await lifecycle.sweep(KeyPurpose.SIGNATURE) == [1]
    remaining = await lifecycle.select(KeyPurpose.SIGNATURE, 10)
    assert [r.identifier for r in remaining] == [3, 2]


@pytest.mark.asyncio
async def test_freshest_keys_survive_even_when_expired(records, lifecycle, clock):
    await put_at(records, clock, T0 - timedelta(days=60), 1)
    await put_at(records, clock, T0 - timedelta(days=50), 2)
    clock.set(T0)
    assert await lifecycle.sweep(KeyPurpose.SIGNATURE) == []
    assert len(await records.list(KeyPurpose.SIGNATURE)) == 2


@pytest.mark.asyncio
async def test_sweep_on_empty_store_returns_nothing(lifecycle):
    assert await lifecycle.sweep(KeyPurpose.ENCRYPTION) == []


@pytest.mark.asyncio
async def test_sweep_leaves_other_purpose_alone(records, lifecycle, clock):
    for days, identifier in ((40, 1), (30, 2), (20, 3)):
        await put_at(records, clock, T0 - timedelta(days=days), identifier, KeyPurpose.ENCRYPTION)
    await put_at(records, clock, T0 - timedelta(days=40), 1, KeyPurpose.SIGNATURE)
    clock.set(T0)
    assert await lifecycle.sweep(KeyPurpose.ENCRYPTION) == [1]
    assert [r.identifier for r in await records.list(KeyPurpose.SIGNATURE)] == [1]


@pytest.mark.asyncio
async def test_sweep_falls_back_to_upload_time(records, lifecycle, clock, objects):
    await put_at(records, clock, T0 - timedelta(days=20), 1)
    await put_at(records, clock, T0 - timedelta(days=2), 2)
    # Legacy upload written without notBefore.
    clock.set(T0 - timedelta(days=30))
    await objects.put("signature/9", b"legacy", {"publicKey": b64e(b"legacy-key"), "tokenKeyID": "9"})
    clock.set(T0 - timedelta(hours=1))
    await put_at(records, clock, T0 - timedelta(hours=1), 3)
    clock.set(T0)

    assert await lifecycle.sweep(KeyPurpose.SIGNATURE) == [1, 9]


@pytest.mark.asyncio
async def test_sweep_respects_activation_delay(records, lifecycle, clock):
    # notBefore far in the future keeps an old upload alive.
    clock.set(T0 - timedelta(days=30))
    await records.put(
        KeyRecord(
            KeyPurpose.SIGNATURE,
            5,
            public_key_with_id(5),
            not_before=int((T0 - timedelta(days=5)).timestamp()),
            private_key=b"p",
        )
    )
    await put_at(records, clock, T0 - timedelta(days=2), 6)
    await put_at(records, clock, T0 - timedelta(days=1), 7)
    clock.set(T0)
    assert await lifecycle.sweep(KeyPurpose.SIGNATURE) == []


@pytest.mark.asyncio
async def test_select_returns_what_exists_when_k_exceeds_count(records, lifecycle, clock):
    await put_at(records, clock, T0, 44)
    selected = await lifecycle.select(KeyPurpose.SIGNATURE, 5)
    assert [r.identifier for r in selected] == [44]


@pytest.mark.asyncio
async def test_select_defaults_to_minimum_freshest_keys(records, lifecycle, clock):
    for hours, identifier in ((3, 10), (2, 11), (1, 12)):
        await put_at(records, clock, T0 - timedelta(hours=hours), identifier)
    selected = await lifecycle.select(KeyPurpose.SIGNATURE)
    assert [r.identifier for r in selected] == [12, 11]


@pytest.mark.asyncio
async def test_select_on_empty_purpose_raises(lifecycle):
    with pytest.raises(DirectoryUninitialized):
        await lifecycle.select(KeyPurpose.ENCRYPTION, 2)


@pytest.mark.asyncio
async def test_select_breaks_upload_ties_by_identifier(records, lifecycle, clock):
    for identifier in (200, 3, 90):
        await put_at(records, clock, T0, identifier)
    selected = await lifecycle.select(KeyPurpose.SIGNATURE, 3)
    assert [r.identifier for r in selected] == [3, 90, 200]


# ----- pure planning properties -----

uploads = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=255),
        st.integers(min_value=0, max_value=90 * 24 * 3600),
        st.booleans(),
    ),
    max_size=40,
    unique_by=lambda t: t[0],
)


def build(entries):
    out = []
    for identifier, age_s, has_not_before in entries:
        uploaded = T0 - timedelta(seconds=age_s)
        out.append(
            KeyRecord(
                KeyPurpose.SIGNATURE,
                identifier,
                b"k%d" % identifier,
                not_before=int(uploaded.timestamp()) if has_not_before else None,
                uploaded_at=uploaded,
            )
        )
    return out


@given(uploads, st.integers(min_value=0, max_value=50))
def test_freshest_is_a_sorted_prefix(entries, k):
    records = build(entries)
    selected = freshest(records, k)
    assert len(selected) == min(k, len(records))
    ordered = order_by_recency(records)
    assert selected == ordered[: len(selected)]
    for newer, older in zip(selected, selected[1:]):
        assert newer.uploaded_at >= older.uploaded_at


@given(uploads, st.integers(min_value=0, max_value=10), st.integers(min_value=0, max_value=60 * DAY_MS))
def test_plan_sweep_never_touches_floor_or_live_keys(entries, k, lifespan_ms):
    records = build(entries)
    doomed = plan_sweep(records, k, lifespan_ms, T0)
    protected = {r.identifier for r in freshest(records, k)}
    for record in doomed:
        assert record.identifier not in protected
        assert T0 > record.expires_at(lifespan_ms)
    survivors = [r for r in records if r not in doomed]
    assert len(survivors) >= min(k, len(records))
    for record in survivors:
        if record.identifier not in protected:
            assert T0 <= record.expires_at(lifespan_ms)


def test_negative_k_is_rejected():
    with pytest.raises(ValueError):
        freshest([], -1)
    with pytest.raises(ValueError):
        plan_sweep([], -1, 0, datetime.now(timezone.utc))


@pytest.mark.asyncio
async def test_sweep_deletes_legacy_object_under_its_own_name(records, lifecycle, clock, objects):
    clock.set(T0 - timedelta(days=40))
    # Metadata says 12, the object is stored as signature/9.
    await objects.put("signature/9", b"legacy", {"publicKey": b64e(b"legacy-key"), "tokenKeyID": "12"})
    await put_at(records, clock, T0 - timedelta(days=2), 12)
    await put_at(records, clock, T0 - timedelta(days=1), 13)
    clock.set(T0)

    assert await lifecycle.sweep(KeyPurpose.SIGNATURE) == [12]
    assert await objects.head("signature/9") is None
    assert await objects.head("signature/12") is not None
    assert [r.identifier for r in await records.list(KeyPurpose.SIGNATURE)] == [13, 12]


@pytest.mark.asyncio
async def test_failed_write_never_reaches_the_directories(tmp_path, monkeypatch, clock):
    objects = FilesystemObjectStore(tmp_path, clock=clock)
    records = KeyRecordStore(objects)
    config = LifecycleConfig(minimum_freshest_keys=2)
    minter = KeyMinter(records, config, clock=clock)
    lifecycle = KeyLifecycle(records, config, clock=clock)

    for purpose in KeyPurpose:
        await minter.mint_unique(purpose)

    def disk_full(_src, _dst):
        raise OSError(28, "No space left on device")

    clock.advance(minutes=5)
    monkeypatch.setattr(os, "replace", disk_full)
    for purpose in KeyPurpose:
        with pytest.raises(StoreError):
            await minter.mint_unique(purpose)
    monkeypatch.undo()

    signature = await lifecycle.select(KeyPurpose.SIGNATURE)
    encryption = await lifecycle.select(KeyPurpose.ENCRYPTION)
    assert len(signature) == len(encryption) == 1
    assert all(record.public_key for record in signature + encryption)

    [token_key] = render_privacypass_directory(signature).json()["token-keys"]
    assert token_key["token-key"] == signature[0].public_key_b64
    [jwk] = render_hpke_jwks(encryption).json()["keys"]
    assert jwk["kid"] == str(encryption[0].identifier)

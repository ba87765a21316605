from __future__ import annotations

import pytest
from conftest import TEST_SAMPLE_RATE, FakeFetch, wav_bytes

from eartuner.errors import SampleLoadError
from eartuner.samples import SampleLoader, SampleManifest, VelocityLayer, decode_sample


def _manifest(base_url: str = "https://samples.test/piano/") -> SampleManifest:
    return SampleManifest(
        name="test-piano",
        base_url=base_url,
        layers=(
            VelocityLayer(low=0, high=63, samples={"C4": "soft-C4.wav", "A4": "soft-A4.wav"}),
            VelocityLayer(low=64, high=127, samples={"C4": "loud-C4.wav"}),
        ),
    )


def test_manifest_lists_every_url() -> None:
    assert _manifest().urls() == [
        "https://samples.test/piano/soft-C4.wav",
        "https://samples.test/piano/soft-A4.wav",
        "https://samples.test/piano/loud-C4.wav",
    ]


def test_velocity_layer_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        VelocityLayer(low=10, high=5, samples={"C4": "C4.wav"})


def test_decode_sample_resamples_to_target_rate() -> None:
    data = wav_bytes(0.5, sample_rate=16_000)
    decoded = decode_sample(data, sample_rate=TEST_SAMPLE_RATE)
    assert decoded.dtype.name == "float32"
    assert abs(decoded.size - TEST_SAMPLE_RATE // 2) <= 1


@pytest.mark.asyncio
async def test_loader_decodes_layers_by_midi(loader: SampleLoader, fake_fetch: FakeFetch) -> None:
    layers = await loader.load(_manifest())

    assert [(layer.low, layer.high) for layer in layers] == [(0, 63), (64, 127)]
    assert sorted(layers[0].buffers) == [60, 69]
    assert sorted(layers[1].buffers) == [60]
    assert len(fake_fetch.urls) == 3


@pytest.mark.asyncio
async def test_loader_reuses_disk_cache(tmp_path, fake_fetch: FakeFetch) -> None:
    first = SampleLoader(cache_dir=tmp_path, sample_rate=TEST_SAMPLE_RATE, fetch=fake_fetch)
    await first.load(_manifest())

    offline = FakeFetch(fail_on="samples.test")
    second = SampleLoader(cache_dir=tmp_path, sample_rate=TEST_SAMPLE_RATE, fetch=offline)
    layers = await second.load(_manifest())

    assert offline.urls == []
    assert (tmp_path / "test-piano" / "loud-C4.wav").exists()
    assert sorted(layers[0].buffers) == [60, 69]


@pytest.mark.asyncio
async def test_fetch_failure_names_the_url() -> None:
    loader = SampleLoader(sample_rate=TEST_SAMPLE_RATE, fetch=FakeFetch(fail_on="loud-C4"))
    with pytest.raises(SampleLoadError) as excinfo:
        await loader.load(_manifest())
    assert excinfo.value.url == "https://samples.test/piano/loud-C4.wav"


@pytest.mark.asyncio
async def test_undecodable_sample_fails_and_is_not_cached(tmp_path) -> None:
    loader = SampleLoader(
        cache_dir=tmp_path,
        sample_rate=TEST_SAMPLE_RATE,
        fetch=FakeFetch(payload=b"definitely not audio"),
    )
    manifest = SampleManifest(
        name="test-piano",
        base_url="https://samples.test/piano/",
        layers=(VelocityLayer(low=0, high=127, samples={"C4": "C4.wav"}),),
    )
    with pytest.raises(SampleLoadError):
        await loader.load(manifest)
    assert not (tmp_path / "test-piano" / "C4.wav").exists()

import numpy as np
import pytest

from noise import NoiseGenerator, generate_pink_noise, generate_white_noise


@pytest.mark.parametrize("sample_rate", [8000, 22050, 44100, 48000])
def test_white_noise_length_and_range(sample_rate):
    data = generate_white_noise(sample_rate)

    assert len(data) == 2 * sample_rate
    assert data.dtype == np.float32
    assert np.all(data >= -1.0)
    assert np.all(data <= 1.0)


def test_white_noise_is_roughly_uniform():
    data = generate_white_noise(44100, rng=np.random.default_rng(3))

    assert abs(float(np.mean(data))) < 0.02
    # Variance of U(-1, 1) is 1/3
    assert np.var(data) == pytest.approx(1 / 3, rel=0.05)


@pytest.mark.parametrize("sample_rate", [8000, 44100])
def test_pink_noise_length_and_amplitude(sample_rate):
    for _ in range(3):
        data = generate_pink_noise(sample_rate)
        assert len(data) == 2 * sample_rate
        assert np.abs(data).max() < 1.2
        assert 0.05 < np.std(data) < 0.4


def test_pink_noise_matches_running_state_filter():
    white = np.random.default_rng(7).uniform(-1.0, 1.0, 200)
    b0 = b1 = b2 = b3 = b4 = b5 = 0.0
    expected = []
    for w in white:
        b0 = 0.99886 * b0 + w * 0.0555179
        b1 = 0.99332 * b1 + w * 0.0750759
        b2 = 0.96900 * b2 + w * 0.1538520
        b3 = 0.86650 * b3 + w * 0.3104856
        b4 = 0.55000 * b4 + w * 0.5329522
        b5 = -0.7616 * b5 - w * 0.0168980
        expected.append((b0 + b1 + b2 + b3 + b4 + b5 + w * 0.5362) * 0.11)

    data = generate_pink_noise(100, duration=2.0, rng=np.random.default_rng(7))

    np.testing.assert_allclose(data, expected, rtol=1e-5, atol=1e-6)


def test_pink_noise_does_not_carry_filter_state_between_calls():
    first = generate_pink_noise(1000, rng=np.random.default_rng(11))
    generate_pink_noise(1000, rng=np.random.default_rng(99))
    again = generate_pink_noise(1000, rng=np.random.default_rng(11))

    np.testing.assert_array_equal(first, again)


def test_pink_noise_has_more_low_frequency_energy_than_white():
    rng = np.random.default_rng(5)
    pink = generate_pink_noise(8000, rng=rng)
    spectrum = np.abs(np.fft.rfft(pink)) ** 2
    low = spectrum[1:200].mean()
    high = spectrum[-2000:].mean()

    assert low > 10 * high


def test_generator_returns_fresh_read_only_buffers():
    generator = NoiseGenerator(duration=2.0)

    first = generator.generate(8000, 'white')
    second = generator.generate(8000, 'white')

    assert first is not second
    assert not np.array_equal(first, second)
    with pytest.raises(ValueError):
        first[0] = 0.5


def test_generator_seed_is_reproducible():
    first = NoiseGenerator(seed=1).generate(8000, 'pink')
    second = NoiseGenerator(seed=1).generate(8000, 'pink')

    np.testing.assert_array_equal(first, second)


def test_generator_rejects_unknown_noise_type():
    with pytest.raises(ValueError):
        NoiseGenerator().generate(8000, 'brown')


def test_generator_rejects_non_positive_sample_rate():
    with pytest.raises(ValueError):
        generate_white_noise(0)
